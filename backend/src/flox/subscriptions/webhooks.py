"""Stripe lifecycle notifications.

Event types are mapped onto a closed set of notification kinds; anything
else falls into ``UNKNOWN`` and is acknowledged without changes. The user
and plan always come from the subscription metadata written at
provisioning time, never from the request.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

import stripe
from sqlalchemy.exc import IntegrityError

from flox.auth.models import ProcessedWebhookEvent, SubscriptionStatus
from flox.billing.gateway import BillingGateway
from flox.logging_config import get_logger
from flox.storage.db import Database, db
from flox.subscriptions.status import SubscriptionStatusService

logger = get_logger(__name__)


class NotificationKind(str, Enum):
    """Stripe notifications that affect subscription status."""
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_DELETED = "subscription_deleted"
    INVOICE_PAID = "invoice_paid"
    INVOICE_PAYMENT_FAILED = "invoice_payment_failed"
    UNKNOWN = "unknown"

    @classmethod
    def from_event_type(cls, event_type: str) -> "NotificationKind":
        return EVENT_KINDS.get(event_type, cls.UNKNOWN)


EVENT_KINDS = {
    "customer.subscription.created": NotificationKind.SUBSCRIPTION_CREATED,
    "customer.subscription.updated": NotificationKind.SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": NotificationKind.SUBSCRIPTION_DELETED,
    "invoice.payment_succeeded": NotificationKind.INVOICE_PAID,
    "invoice.paid": NotificationKind.INVOICE_PAID,
    "invoice.payment_failed": NotificationKind.INVOICE_PAYMENT_FAILED,
}

# Stripe subscription.status -> local status; unlisted values (incomplete, paused) are ignored
PROVIDER_STATUSES = {
    "trialing": SubscriptionStatus.TRIALING,
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "canceled": SubscriptionStatus.CANCELED,
    "incomplete_expired": SubscriptionStatus.CANCELED,
}


class WebhookOutcome(str, Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    IGNORED = "ignored"
    DUPLICATE = "duplicate"


@dataclass(frozen=True)
class BillingNotification:
    """A verified Stripe event reduced to what the state machine needs."""

    kind: NotificationKind
    subscription_id: str | None = None
    user_id: str | None = None
    plan: str | None = None
    target_status: SubscriptionStatus | None = None


def _invoice_subscription_id(invoice: dict[str, Any]) -> str | None:
    """Subscription id of an invoice across Stripe API versions."""
    subscription = invoice.get("subscription")
    if subscription is None:
        parent = invoice.get("parent") or {}
        subscription = (parent.get("subscription_details") or {}).get("subscription")
    if isinstance(subscription, dict):
        return subscription.get("id")
    return subscription


class WebhookHandler:
    """Applies Stripe notifications to user subscription status."""

    def __init__(
        self,
        gateway: BillingGateway,
        status_service: SubscriptionStatusService | None = None,
        database: Database | None = None,
    ):
        self.gateway = gateway
        self.db = database or db
        self.status_service = status_service or SubscriptionStatusService(self.db)
        self.logger = get_logger(__name__)

    # ==================== IDEMPOTENCY ====================

    def is_event_processed(self, event_id: str) -> bool:
        """Check if a webhook event has already been processed."""
        with self.db.session() as session:
            return session.get(ProcessedWebhookEvent, event_id) is not None

    def mark_event_processed(self, event_id: str, event_type: str) -> None:
        """Mark a webhook event as processed."""
        try:
            with self.db.session() as session:
                session.add(ProcessedWebhookEvent(
                    id=event_id,
                    event_type=event_type,
                    source="stripe",
                    processed_at=datetime.utcnow(),
                ))
        except IntegrityError:
            # Concurrent delivery of the same event already recorded it
            pass

    def cleanup_old_events(self, days: int = 30) -> int:
        """Remove webhook events older than specified days.

        Returns:
            Number of deleted events
        """
        cutoff = datetime.utcnow() - timedelta(days=days)
        with self.db.session() as session:
            return session.query(ProcessedWebhookEvent).filter(
                ProcessedWebhookEvent.processed_at < cutoff
            ).delete()

    # ==================== PARSING ====================

    def parse(self, event: dict[str, Any]) -> BillingNotification:
        """Reduce a verified Stripe event to a BillingNotification."""
        kind = NotificationKind.from_event_type(event.get("type", ""))
        obj = event["data"]["object"]

        if kind in (NotificationKind.SUBSCRIPTION_CREATED, NotificationKind.SUBSCRIPTION_UPDATED):
            metadata = obj.get("metadata") or {}
            return BillingNotification(
                kind=kind,
                subscription_id=obj.get("id"),
                user_id=metadata.get("user_id"),
                plan=metadata.get("plan"),
                target_status=PROVIDER_STATUSES.get(obj.get("status")),
            )

        if kind == NotificationKind.SUBSCRIPTION_DELETED:
            metadata = obj.get("metadata") or {}
            return BillingNotification(
                kind=kind,
                subscription_id=obj.get("id"),
                user_id=metadata.get("user_id"),
                plan=metadata.get("plan"),
                target_status=SubscriptionStatus.CANCELED,
            )

        if kind in (NotificationKind.INVOICE_PAID, NotificationKind.INVOICE_PAYMENT_FAILED):
            subscription_id = _invoice_subscription_id(obj)
            if not subscription_id:
                return BillingNotification(kind=kind)

            if kind == NotificationKind.INVOICE_PAID and not obj.get("amount_paid"):
                # Zero-amount trial invoice: nothing was actually charged
                return BillingNotification(kind=kind, subscription_id=subscription_id)

            subscription = self.gateway.retrieve_subscription(subscription_id)
            target = (
                SubscriptionStatus.ACTIVE
                if kind == NotificationKind.INVOICE_PAID
                else SubscriptionStatus.PAST_DUE
            )
            return BillingNotification(
                kind=kind,
                subscription_id=subscription_id,
                user_id=subscription.metadata.get("user_id"),
                plan=subscription.metadata.get("plan"),
                target_status=target,
            )

        return BillingNotification(kind=NotificationKind.UNKNOWN)

    # ==================== DISPATCH ====================

    def handle(self, event: dict[str, Any] | stripe.Event) -> WebhookOutcome:
        """Process a verified Stripe event.

        Args:
            event: Event returned by ``verify_webhook_signature``, or a
                ``stripe.Event`` from the SDK

        Returns:
            WebhookOutcome
        """
        if isinstance(event, stripe.StripeObject):
            event = event.to_dict()

        event_id = event.get("id", "")
        event_type = event.get("type", "")

        if event_id and self.is_event_processed(event_id):
            self.logger.info("stripe_webhook_duplicate", event_id=event_id)
            return WebhookOutcome.DUPLICATE

        notification = self.parse(event)

        if notification.kind == NotificationKind.UNKNOWN:
            self.logger.info("stripe_webhook_unhandled", event_type=event_type)
            outcome = WebhookOutcome.IGNORED
        elif not notification.user_id or notification.target_status is None:
            self.logger.info(
                "stripe_webhook_no_transition",
                event_type=event_type,
                subscription_id=notification.subscription_id,
            )
            outcome = WebhookOutcome.IGNORED
        else:
            changed = self.status_service.apply_transition(
                notification.user_id,
                notification.target_status,
                subscription_id=notification.subscription_id,
                plan=notification.plan,
            )
            outcome = WebhookOutcome.APPLIED if changed else WebhookOutcome.UNCHANGED

        # Mark as processed AFTER successful handling
        if event_id:
            self.mark_event_processed(event_id, event_type)

        self.logger.info("stripe_webhook_processed", event_id=event_id, event_type=event_type, outcome=outcome.value)
        return outcome
