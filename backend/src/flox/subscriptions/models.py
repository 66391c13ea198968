"""Pydantic models for subscription provisioning and status."""

from datetime import datetime

from pydantic import BaseModel, Field

from flox.auth.models import SubscriptionPlan, SubscriptionStatus
from flox.referral.models import DiscountType


class AppliedDiscount(BaseModel):
    """Discount actually applied to a new subscription, for display."""
    type: DiscountType
    percent_off: int | None = None
    amount_off: int | None = None  # minor currency units
    currency: str | None = None
    extra_trial_days: int = 0
    free: bool = False
    label: str


class ProvisionResult(BaseModel):
    """Outcome of a successful provisioning call."""
    subscription_id: str
    client_secret: str | None
    status: str
    plan: SubscriptionPlan
    trial_days: int
    trial_ends_at: datetime
    discount: AppliedDiscount | None = None
    redemption_recorded: bool = True
    warning: str | None = None


class CreateSubscriptionRequest(BaseModel):
    """Request to start a subscription."""
    plan: str = Field(..., min_length=1, max_length=20)
    referral_code: str | None = Field(default=None, max_length=50)


class SubscriptionStatusResponse(BaseModel):
    """Current subscription state for the dashboard gate."""
    has_active_subscription: bool
    subscription_status: SubscriptionStatus
    subscription_plan: SubscriptionPlan | None = None
    trial_ends_at: datetime | None = None
