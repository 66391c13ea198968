"""Service dependencies for API routes.

Each route asks for its service through one of these functions so tests
can swap in a different database or billing gateway with
``app.dependency_overrides``.
"""

from flox.billing.gateway import StripeGateway
from flox.referral.service import ReferralService
from flox.subscriptions.provisioner import SubscriptionProvisioner
from flox.subscriptions.status import SubscriptionStatusService
from flox.subscriptions.webhooks import WebhookHandler


def get_referral_service() -> ReferralService:
    return ReferralService()


def get_status_service() -> SubscriptionStatusService:
    return SubscriptionStatusService()


def get_provisioner() -> SubscriptionProvisioner:
    return SubscriptionProvisioner(gateway=StripeGateway())


def get_webhook_handler() -> WebhookHandler:
    return WebhookHandler(gateway=StripeGateway())
