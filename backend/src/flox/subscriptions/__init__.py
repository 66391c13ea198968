"""Subscription provisioning and status tracking."""

from flox.subscriptions.discounts import DiscountTerms, compute_discount_terms
from flox.subscriptions.models import AppliedDiscount, ProvisionResult, SubscriptionStatusResponse
from flox.subscriptions.provisioner import SubscriptionProvisioner
from flox.subscriptions.status import SubscriptionStatusService, can_transition
from flox.subscriptions.webhooks import NotificationKind, WebhookHandler, WebhookOutcome

__all__ = [
    "AppliedDiscount",
    "DiscountTerms",
    "NotificationKind",
    "ProvisionResult",
    "SubscriptionProvisioner",
    "SubscriptionStatusResponse",
    "SubscriptionStatusService",
    "WebhookHandler",
    "WebhookOutcome",
    "can_transition",
    "compute_discount_terms",
]
