"""Weekly usage status route."""
from typing import Any, Dict

from fastapi import APIRouter, Depends

from wardrobe.core.auth import get_current_user_id
from wardrobe.services import Services, get_services


router = APIRouter(prefix="/api/usage", tags=["usage"])


@router.get("")
def get_usage(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    return services.quota.get_usage_status(user_id)
