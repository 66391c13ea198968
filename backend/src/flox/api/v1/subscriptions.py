"""Subscription API v1 endpoints."""

from fastapi import APIRouter, Depends, Request

from flox.api.deps import get_provisioner, get_status_service
from flox.api.rate_limit import limiter
from flox.auth.middleware import require_auth
from flox.auth.models import UserAccount
from flox.subscriptions.models import (
    CreateSubscriptionRequest,
    ProvisionResult,
    SubscriptionStatusResponse,
)
from flox.subscriptions.provisioner import SubscriptionProvisioner
from flox.subscriptions.status import SubscriptionStatusService

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@router.post("", response_model=ProvisionResult)
@limiter.limit("10/minute")
def create_subscription(
    request: Request,
    body: CreateSubscriptionRequest,
    user: UserAccount = Depends(require_auth),
    provisioner: SubscriptionProvisioner = Depends(get_provisioner),
):
    """Start a subscription for the selected plan.

    Returns the client secret the frontend needs to collect payment
    details with Stripe Elements.
    """
    return provisioner.provision(user.id, body.plan, body.referral_code)


@router.get("/status", response_model=SubscriptionStatusResponse)
def get_subscription_status(
    user: UserAccount = Depends(require_auth),
    status_service: SubscriptionStatusService = Depends(get_status_service),
):
    """Subscription state used to gate the dashboard."""
    return status_service.get_status(user.id)
