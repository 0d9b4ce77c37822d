"""Admin operations."""
from typing import Any, Dict

from fastapi import APIRouter, Depends

from wardrobe.core.auth import require_admin
from wardrobe.services import Services, get_services


router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.post("/reconcile")
def reconcile_subscriptions(services: Services = Depends(get_services)) -> Dict[str, Any]:
    """Run the subscription reconciliation sweep now."""
    return services.run_reconciliation()
