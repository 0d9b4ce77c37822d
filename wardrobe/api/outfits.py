"""Outfit generation route."""
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from wardrobe.core.auth import get_current_user_id
from wardrobe.models.wardrobe import OutfitResponse, StylePreferences
from wardrobe.services import Services, get_services


router = APIRouter(prefix="/api/outfits", tags=["outfits"])


class GenerateOutfitsRequest(BaseModel):
    preferences: Optional[StylePreferences] = None
    item_ids: Optional[List[str]] = None


@router.post("/generate", response_model=OutfitResponse)
def generate_outfits(
    body: Optional[GenerateOutfitsRequest] = None,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    body = body or GenerateOutfitsRequest()
    return services.outfits.generate_outfits(user_id, body.preferences, body.item_ids)
