"""
Wardrobe item routes.

- POST /api/items: register an uploaded image
- GET  /api/items: list the caller's items
- POST /api/items/{item_id}/analyze: classify an item (image-upload quota)
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from wardrobe.core.auth import get_current_user_id
from wardrobe.services import Services, get_services


router = APIRouter(prefix="/api/items", tags=["items"])


class RegisterItemRequest(BaseModel):
    image_url: str = Field(..., min_length=1)


class ItemOut(BaseModel):
    item_id: str
    user_id: str
    image_url: str
    status: str
    analysis: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@router.post("", response_model=ItemOut, status_code=201)
def register_item(
    body: RegisterItemRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    return services.items.register_item(user_id, body.image_url)


@router.get("", response_model=List[ItemOut])
def list_items(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    return services.items.list_items(user_id)


@router.post("/{item_id}/analyze")
def analyze_item(
    item_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """
    Classify the item and store its analysis.

    Errors:
        403: paid subscription not active
        404: item not found
        429: weekly image upload limit reached
        502: labeler failed (nothing charged)
    """
    return services.items.analyze_item(user_id, item_id)
