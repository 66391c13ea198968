"""Billing module: plans and the Stripe gateway."""

from flox.billing.gateway import BillingGateway, BillingSubscription, StripeGateway
from flox.billing.plans import Plan, get_plan, get_plans

__all__ = ["BillingGateway", "BillingSubscription", "StripeGateway", "Plan", "get_plan", "get_plans"]
