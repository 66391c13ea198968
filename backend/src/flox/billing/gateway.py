"""Stripe integration for Flox subscriptions.

Everything that talks to Stripe goes through ``StripeGateway`` so the
provisioning and webhook code only sees plain dataclasses and Flox errors.
"""

from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator, Protocol

import stripe

from flox.errors import BillingProviderRejectedError, BillingProviderUnavailableError
from flox.logging_config import get_logger
from flox.settings import settings

logger = get_logger(__name__)

# Initialize Stripe
stripe.api_key = settings.stripe_secret_key
if settings.stripe_api_version:
    stripe.api_version = settings.stripe_api_version


@dataclass
class BillingSubscription:
    """The parts of a Stripe subscription Flox relies on."""

    id: str
    status: str
    customer_id: str | None = None
    client_secret: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


class BillingGateway(Protocol):
    """Operations Flox needs from the billing provider."""

    def create_customer(self, email: str | None, name: str, metadata: dict[str, str]) -> str: ...

    def create_coupon(
        self,
        name: str,
        percent_off: int | None = None,
        amount_off: int | None = None,
        currency: str | None = None,
    ) -> str: ...

    def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        trial_period_days: int,
        metadata: dict[str, str],
        coupon_id: str | None = None,
    ) -> BillingSubscription: ...

    def retrieve_subscription(self, subscription_id: str) -> BillingSubscription: ...


@contextmanager
def _stripe_errors(operation: str) -> Generator[None, None, None]:
    """Translate Stripe exceptions into Flox errors.

    Provider messages are logged, never passed on to the client.
    """
    try:
        yield
    except (stripe.CardError, stripe.InvalidRequestError) as e:
        logger.warning("stripe_request_rejected", operation=operation, error=str(e), code=e.code)
        raise BillingProviderRejectedError()
    except stripe.StripeError as e:
        # Connection, rate limit, authentication and API errors
        logger.error("stripe_unavailable", operation=operation, error=str(e), error_type=type(e).__name__)
        raise BillingProviderUnavailableError()


def _client_secret(subscription: dict[str, Any]) -> str | None:
    """Secret the client needs to confirm payment or save a card.

    With a trial the first invoice is zero, so Stripe returns a pending
    SetupIntent instead of a PaymentIntent.
    """
    invoice = subscription.get("latest_invoice")
    if isinstance(invoice, dict):
        payment_intent = invoice.get("payment_intent")
        if isinstance(payment_intent, dict) and payment_intent.get("client_secret"):
            return payment_intent["client_secret"]

    setup_intent = subscription.get("pending_setup_intent")
    if isinstance(setup_intent, dict):
        return setup_intent.get("client_secret")

    return None


def _to_billing_subscription(stripe_subscription: stripe.Subscription) -> BillingSubscription:
    # StripeObject is not a dict; work on a plain copy of its data
    subscription = stripe_subscription.to_dict()
    customer = subscription.get("customer")
    return BillingSubscription(
        id=subscription["id"],
        status=subscription.get("status", ""),
        customer_id=customer if isinstance(customer, str) else (customer or {}).get("id"),
        client_secret=_client_secret(subscription),
        metadata=dict(subscription.get("metadata") or {}),
    )


class StripeGateway:
    """Billing gateway backed by the Stripe API."""

    def __init__(self, api_key: str | None = None):
        self.api_key = api_key or settings.stripe_secret_key

    def _require_configured(self) -> None:
        if not self.api_key:
            logger.error("stripe_not_configured")
            raise BillingProviderUnavailableError(
                "Payment processing is not available. Please contact support."
            )

    def create_customer(self, email: str | None, name: str, metadata: dict[str, str]) -> str:
        """Create a Stripe customer.

        Args:
            email: Customer email
            name: Display name
            metadata: Stripe metadata (user_id)

        Returns:
            Stripe customer id
        """
        self._require_configured()
        with _stripe_errors("customer_create"):
            customer = stripe.Customer.create(
                api_key=self.api_key,
                email=email,
                name=name,
                metadata=metadata,
            )

        logger.info("stripe_customer_created", customer_id=customer.id, user_id=metadata.get("user_id"))
        return customer.id

    def create_coupon(
        self,
        name: str,
        percent_off: int | None = None,
        amount_off: int | None = None,
        currency: str | None = None,
    ) -> str:
        """Create a coupon that applies forever.

        Args:
            name: Coupon name shown on invoices
            percent_off: Percentage discount
            amount_off: Fixed discount in minor currency units
            currency: Required with amount_off

        Returns:
            Stripe coupon id
        """
        self._require_configured()
        params: dict[str, Any] = {"duration": "forever", "name": name}
        if percent_off is not None:
            params["percent_off"] = percent_off
        else:
            params["amount_off"] = amount_off
            params["currency"] = currency or settings.currency

        with _stripe_errors("coupon_create"):
            coupon = stripe.Coupon.create(api_key=self.api_key, **params)

        logger.info("stripe_coupon_created", coupon_id=coupon.id, percent_off=percent_off, amount_off=amount_off)
        return coupon.id

    def create_subscription(
        self,
        customer_id: str,
        price_id: str,
        trial_period_days: int,
        metadata: dict[str, str],
        coupon_id: str | None = None,
    ) -> BillingSubscription:
        """Create an incomplete subscription awaiting payment confirmation.

        Args:
            customer_id: Stripe customer id
            price_id: Stripe price id of the plan
            trial_period_days: Trial length
            metadata: Stripe metadata (user_id, plan, referral_code)
            coupon_id: Optional coupon to apply

        Returns:
            BillingSubscription
        """
        self._require_configured()
        params: dict[str, Any] = {
            "customer": customer_id,
            "items": [{"price": price_id}],
            "payment_behavior": "default_incomplete",
            "payment_settings": {"save_default_payment_method": "on_subscription"},
            "trial_period_days": trial_period_days,
            "metadata": metadata,
            "expand": ["latest_invoice.payment_intent", "pending_setup_intent"],
        }
        if coupon_id:
            params["discounts"] = [{"coupon": coupon_id}]

        with _stripe_errors("subscription_create"):
            subscription = stripe.Subscription.create(api_key=self.api_key, **params)

        logger.info(
            "stripe_subscription_created",
            subscription_id=subscription.id,
            customer_id=customer_id,
            trial_days=trial_period_days,
            coupon_id=coupon_id,
        )
        return _to_billing_subscription(subscription)

    def retrieve_subscription(self, subscription_id: str) -> BillingSubscription:
        """Fetch a subscription (used for invoice notifications)."""
        self._require_configured()
        with _stripe_errors("subscription_retrieve"):
            subscription = stripe.Subscription.retrieve(subscription_id, api_key=self.api_key)
        return _to_billing_subscription(subscription)


def verify_webhook_signature(payload: bytes, sig_header: str) -> dict[str, Any]:
    """Verify and parse a Stripe webhook event.

    Args:
        payload: Raw request body
        sig_header: Stripe-Signature header value

    Returns:
        Verified Stripe event as a plain dict

    Raises:
        ValueError: If signature is invalid
    """
    if not settings.stripe_webhook_secret:
        raise ValueError("Stripe webhook secret not configured")

    try:
        event = stripe.Webhook.construct_event(
            payload,
            sig_header,
            settings.stripe_webhook_secret,
        )
    except stripe.SignatureVerificationError:
        raise ValueError("Invalid webhook signature")

    return event.to_dict()
