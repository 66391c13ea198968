from datetime import datetime, timedelta

import pytest
import stripe

from flox.auth.models import ProcessedWebhookEvent, SubscriptionPlan, UserAccount
from flox.billing.gateway import BillingSubscription
from flox.errors import BillingProviderUnavailableError
from flox.subscriptions.webhooks import (
    NotificationKind,
    WebhookHandler,
    WebhookOutcome,
)


@pytest.fixture
def handler(gateway, status_service, database):
    return WebhookHandler(gateway=gateway, status_service=status_service, database=database)


@pytest.fixture
def trialing_user(status_service, now):
    status_service.ensure_user("user_1")
    status_service.start_trial("user_1", "cus_1", "sub_1", SubscriptionPlan.MONTHLY, 7, now=now)
    return "user_1"


def status_of(database, user_id):
    with database.session() as session:
        return session.get(UserAccount, user_id).subscription_status


def subscription_event(event_id, event_type, status="active", subscription_id="sub_1", user_id="user_1"):
    return {
        "id": event_id,
        "type": event_type,
        "data": {
            "object": {
                "id": subscription_id,
                "object": "subscription",
                "status": status,
                "metadata": {"user_id": user_id, "plan": "monthly"},
            }
        },
    }


def invoice_event(event_id, event_type, amount_paid=700, subscription_id="sub_1"):
    return {
        "id": event_id,
        "type": event_type,
        "data": {
            "object": {
                "id": "in_1",
                "object": "invoice",
                "amount_paid": amount_paid,
                "subscription": subscription_id,
            }
        },
    }


def register_subscription(gateway, subscription_id="sub_1", user_id="user_1"):
    gateway.subscriptions[subscription_id] = BillingSubscription(
        id=subscription_id,
        status="active",
        customer_id="cus_1",
        metadata={"user_id": user_id, "plan": "monthly"},
    )


def test_event_kinds():
    assert NotificationKind.from_event_type("customer.subscription.updated") == NotificationKind.SUBSCRIPTION_UPDATED
    assert NotificationKind.from_event_type("invoice.paid") == NotificationKind.INVOICE_PAID
    assert NotificationKind.from_event_type("charge.refunded") == NotificationKind.UNKNOWN


def test_subscription_updated_moves_status(handler, database, trialing_user):
    outcome = handler.handle(subscription_event("evt_1", "customer.subscription.updated", status="active"))

    assert outcome == WebhookOutcome.APPLIED
    assert status_of(database, "user_1") == "active"


def test_sdk_event_object_is_accepted(handler, database, trialing_user):
    event = stripe.Event.construct_from(
        subscription_event("evt_1", "customer.subscription.updated", status="active"),
        "sk_test_123",
    )

    assert handler.handle(event) == WebhookOutcome.APPLIED
    assert status_of(database, "user_1") == "active"


def test_duplicate_delivery_is_skipped(handler, database, trialing_user):
    event = subscription_event("evt_1", "customer.subscription.updated", status="past_due")

    assert handler.handle(event) == WebhookOutcome.APPLIED
    assert handler.handle(event) == WebhookOutcome.DUPLICATE
    assert handler.is_event_processed("evt_1") is True
    assert status_of(database, "user_1") == "past_due"


def test_same_status_is_unchanged(handler, database, trialing_user):
    outcome = handler.handle(subscription_event("evt_1", "customer.subscription.created", status="trialing"))

    assert outcome == WebhookOutcome.UNCHANGED
    assert status_of(database, "user_1") == "trialing"


def test_subscription_deleted_cancels(handler, database, trialing_user):
    outcome = handler.handle(subscription_event("evt_1", "customer.subscription.deleted", status="canceled"))

    assert outcome == WebhookOutcome.APPLIED
    assert status_of(database, "user_1") == "canceled"


def test_out_of_order_update_after_cancel_is_ignored(handler, database, trialing_user):
    handler.handle(subscription_event("evt_2", "customer.subscription.deleted", status="canceled"))

    outcome = handler.handle(subscription_event("evt_1", "customer.subscription.updated", status="active"))

    assert outcome == WebhookOutcome.UNCHANGED
    assert status_of(database, "user_1") == "canceled"


def test_notification_for_old_subscription_is_ignored(handler, database, trialing_user):
    outcome = handler.handle(
        subscription_event("evt_1", "customer.subscription.deleted", subscription_id="sub_old")
    )

    assert outcome == WebhookOutcome.UNCHANGED
    assert status_of(database, "user_1") == "trialing"


def test_unknown_event_is_acknowledged(handler, gateway, database, trialing_user):
    event = {"id": "evt_1", "type": "charge.refunded", "data": {"object": {"id": "ch_1"}}}

    assert handler.handle(event) == WebhookOutcome.IGNORED
    assert handler.is_event_processed("evt_1") is True
    assert gateway.calls == []


def test_unmapped_provider_status_is_ignored(handler, database, trialing_user):
    outcome = handler.handle(subscription_event("evt_1", "customer.subscription.updated", status="incomplete"))

    assert outcome == WebhookOutcome.IGNORED
    assert status_of(database, "user_1") == "trialing"


def test_missing_user_metadata_is_ignored(handler, database, trialing_user):
    event = subscription_event("evt_1", "customer.subscription.updated", status="active")
    event["data"]["object"]["metadata"] = {}

    assert handler.handle(event) == WebhookOutcome.IGNORED
    assert status_of(database, "user_1") == "trialing"


def test_invoice_paid_activates(handler, gateway, database, trialing_user):
    register_subscription(gateway)

    outcome = handler.handle(invoice_event("evt_1", "invoice.payment_succeeded", amount_paid=700))

    assert outcome == WebhookOutcome.APPLIED
    assert status_of(database, "user_1") == "active"
    assert gateway.last("retrieve_subscription") == {"subscription_id": "sub_1"}


def test_zero_amount_trial_invoice_is_ignored(handler, gateway, database, trialing_user):
    outcome = handler.handle(invoice_event("evt_1", "invoice.paid", amount_paid=0))

    assert outcome == WebhookOutcome.IGNORED
    assert status_of(database, "user_1") == "trialing"
    assert "retrieve_subscription" not in gateway.operations()


def test_invoice_payment_failed_marks_past_due(handler, gateway, database, trialing_user):
    register_subscription(gateway)
    handler.handle(invoice_event("evt_1", "invoice.payment_succeeded"))

    outcome = handler.handle(invoice_event("evt_2", "invoice.payment_failed", amount_paid=0))

    assert outcome == WebhookOutcome.APPLIED
    assert status_of(database, "user_1") == "past_due"


def test_invoice_subscription_from_parent_details(handler, gateway, database, trialing_user):
    register_subscription(gateway)
    event = invoice_event("evt_1", "invoice.paid")
    del event["data"]["object"]["subscription"]
    event["data"]["object"]["parent"] = {"subscription_details": {"subscription": "sub_1"}}

    assert handler.handle(event) == WebhookOutcome.APPLIED
    assert status_of(database, "user_1") == "active"


def test_invoice_without_subscription_is_ignored(handler, gateway, trialing_user):
    event = invoice_event("evt_1", "invoice.paid", subscription_id=None)

    assert handler.handle(event) == WebhookOutcome.IGNORED
    assert gateway.calls == []


def test_failed_processing_is_not_marked(handler, gateway, trialing_user):
    gateway.fail_on = "retrieve_subscription"
    register_subscription(gateway)

    with pytest.raises(BillingProviderUnavailableError):
        handler.handle(invoice_event("evt_1", "invoice.paid"))

    assert handler.is_event_processed("evt_1") is False


def test_cleanup_old_events(handler, database):
    handler.mark_event_processed("evt_new", "invoice.paid")
    with database.session() as session:
        session.add(ProcessedWebhookEvent(
            id="evt_old",
            event_type="invoice.paid",
            processed_at=datetime.utcnow() - timedelta(days=45),
        ))

    assert handler.cleanup_old_events(days=30) == 1
    assert handler.is_event_processed("evt_old") is False
    assert handler.is_event_processed("evt_new") is True
