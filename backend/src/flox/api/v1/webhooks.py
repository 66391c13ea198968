"""Webhook endpoints for external services."""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from flox.api.deps import get_webhook_handler
from flox.billing.gateway import verify_webhook_signature
from flox.logging_config import get_logger
from flox.settings import settings
from flox.subscriptions.webhooks import WebhookHandler

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    handler: WebhookHandler = Depends(get_webhook_handler),
):
    """Handle Stripe webhook events.

    Verifies the webhook signature before anything else. Processing runs in
    the threadpool since it touches the database and may call Stripe.
    """
    if not settings.stripe_webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhooks not configured",
        )

    payload = await request.body()
    sig_header = request.headers.get("stripe-signature", "")

    try:
        event = verify_webhook_signature(payload, sig_header)
    except ValueError as e:
        logger.warning("stripe_webhook_invalid", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook",
        )

    try:
        outcome = await run_in_threadpool(handler.handle, event)
    except Exception as e:
        # Non-2xx makes Stripe retry the delivery later
        logger.error("stripe_webhook_error", event_id=event.get("id"), event_type=event.get("type"), error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        )

    return {"received": True, "outcome": outcome.value}
