"""Shared fixtures: a throwaway SQLite database and a fake billing gateway."""

import os

# Keep imports of flox.* away from the developer database and Stripe account
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("STRIPE_SECRET_KEY", None)
os.environ.pop("STRIPE_WEBHOOK_SECRET", None)

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402

from flox.billing.gateway import BillingSubscription  # noqa: E402
from flox.errors import BillingProviderUnavailableError  # noqa: E402
from flox.referral.service import ReferralService  # noqa: E402
from flox.storage.db import Database  # noqa: E402
from flox.subscriptions.provisioner import SubscriptionProvisioner  # noqa: E402
from flox.subscriptions.status import SubscriptionStatusService  # noqa: E402

NOW = datetime(2026, 10, 19, 12, 0, 0)


class FakeBillingGateway:
    """In-memory stand-in for StripeGateway that records every call."""

    def __init__(self):
        self.calls = []
        self.subscriptions = {}
        self.fail_on = None
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{self._counter}"

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise BillingProviderUnavailableError()

    def create_customer(self, email, name, metadata):
        self.calls.append(("create_customer", {"email": email, "name": name, "metadata": metadata}))
        self._maybe_fail("create_customer")
        return self._next_id("cus")

    def create_coupon(self, name, percent_off=None, amount_off=None, currency=None):
        self.calls.append(("create_coupon", {"name": name, "percent_off": percent_off, "amount_off": amount_off}))
        self._maybe_fail("create_coupon")
        return self._next_id("coupon")

    def create_subscription(self, customer_id, price_id, trial_period_days, metadata, coupon_id=None):
        self.calls.append((
            "create_subscription",
            {
                "customer_id": customer_id,
                "price_id": price_id,
                "trial_period_days": trial_period_days,
                "metadata": metadata,
                "coupon_id": coupon_id,
            },
        ))
        self._maybe_fail("create_subscription")
        subscription = BillingSubscription(
            id=self._next_id("sub"),
            status="trialing",
            customer_id=customer_id,
            client_secret="seti_secret_test",
            metadata=dict(metadata),
        )
        self.subscriptions[subscription.id] = subscription
        return subscription

    def retrieve_subscription(self, subscription_id):
        self.calls.append(("retrieve_subscription", {"subscription_id": subscription_id}))
        self._maybe_fail("retrieve_subscription")
        return self.subscriptions[subscription_id]

    def operations(self) -> list[str]:
        return [name for name, _ in self.calls]

    def last(self, operation: str) -> dict:
        return [params for name, params in self.calls if name == operation][-1]


@pytest.fixture
def database(tmp_path):
    """File-backed SQLite so every session sees the same data."""
    database = Database(f"sqlite:///{tmp_path / 'flox-test.db'}")
    database.create_tables()
    yield database
    database.dispose()


@pytest.fixture
def gateway():
    return FakeBillingGateway()


@pytest.fixture
def referral_service(database):
    return ReferralService(database)


@pytest.fixture
def status_service(database):
    return SubscriptionStatusService(database)


@pytest.fixture
def provisioner(database, gateway, referral_service, status_service):
    return SubscriptionProvisioner(
        gateway=gateway,
        referral_service=referral_service,
        status_service=status_service,
        database=database,
        clock=lambda: NOW,
    )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_code(referral_service, database):
    """Create a referral code, optionally forcing usage and active state."""

    def _make_code(code="FLOX25OFF", discount_type="percentage", discount_value=25,
                   max_uses=None, expires_at=None, current_uses=0, is_active=True,
                   description=None):
        referral_code = referral_service.create_code(
            code=code,
            discount_type=discount_type,
            discount_value=discount_value,
            description=description,
            max_uses=max_uses,
            expires_at=expires_at,
        )
        if current_uses or not is_active:
            from flox.referral.models import ReferralCode

            with database.session() as session:
                row = session.get(ReferralCode, referral_code.id)
                row.current_uses = current_uses
                row.is_active = is_active
        return referral_code

    return _make_code


@pytest.fixture
def future():
    return NOW + timedelta(days=30)
