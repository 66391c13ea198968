"""Subscription plans offered on the plan selection screen."""

from dataclasses import dataclass

from flox.auth.models import SubscriptionPlan
from flox.errors import InvalidPlanError
from flox.settings import settings


@dataclass(frozen=True)
class Plan:
    """A Stripe price the user can subscribe to."""

    id: SubscriptionPlan
    price_id: str
    amount: int  # minor currency units
    interval: str


def get_plans() -> dict[SubscriptionPlan, Plan]:
    """Known plans keyed by id. Price ids come from settings."""
    return {
        SubscriptionPlan.MONTHLY: Plan(
            id=SubscriptionPlan.MONTHLY,
            price_id=settings.stripe_monthly_price_id,
            amount=700,  # $7.00
            interval="month",
        ),
        SubscriptionPlan.YEARLY: Plan(
            id=SubscriptionPlan.YEARLY,
            price_id=settings.stripe_yearly_price_id,
            amount=6900,  # $69.00
            interval="year",
        ),
    }


def get_plan(plan_id: str) -> Plan:
    """Resolve a plan id.

    Raises:
        InvalidPlanError: If the plan is not offered
    """
    try:
        return get_plans()[SubscriptionPlan(plan_id)]
    except (KeyError, ValueError):
        raise InvalidPlanError(plan_id)
