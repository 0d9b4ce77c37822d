"""Stripe webhook route."""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from wardrobe.services import Services, get_services


router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    services: Services = Depends(get_services),
):
    """
    Verify and apply a Stripe subscription event.

    Verified events are always acknowledged, including ignored types and
    customers with no profile.

    Errors:
        400: invalid signature or payload
        503: billing disabled or profile store unavailable (Stripe retries)
    """
    # Raw body is required for signature verification
    body = await request.body()
    outcome = services.apply_billing_event(body, stripe_signature)
    return {"received": True, "event_id": outcome.event_id, "action": outcome.action}
