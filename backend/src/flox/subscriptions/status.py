"""Subscription status on the user record.

Status moves along ``none -> trialing -> {active, past_due, canceled}``.
Provisioning starts the trial; Stripe notifications drive the rest.
Webhooks arrive out of order and more than once, so applying the status
a user already has is a no-op and disallowed moves are ignored.
"""

from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from flox.auth.models import SubscriptionPlan, SubscriptionStatus, UserAccount
from flox.errors import PersistenceError, SubscriptionExistsError
from flox.logging_config import get_logger
from flox.storage.db import Database, db
from flox.subscriptions.models import SubscriptionStatusResponse

logger = get_logger(__name__)

ALLOWED_TRANSITIONS: dict[SubscriptionStatus, frozenset[SubscriptionStatus]] = {
    SubscriptionStatus.NONE: frozenset({SubscriptionStatus.TRIALING}),
    SubscriptionStatus.TRIALING: frozenset({
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELED,
    }),
    SubscriptionStatus.ACTIVE: frozenset({SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELED}),
    SubscriptionStatus.PAST_DUE: frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELED}),
    SubscriptionStatus.CANCELED: frozenset(),
}

# Statuses that block starting another subscription
LIVE_STATUSES = frozenset({
    SubscriptionStatus.TRIALING,
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.PAST_DUE,
})


def can_transition(current: SubscriptionStatus, target: SubscriptionStatus) -> bool:
    """Whether ``current -> target`` is permitted (staying put always is)."""
    return current == target or target in ALLOWED_TRANSITIONS[current]


class SubscriptionStatusService:
    """Reads and writes the subscription fields of a user."""

    def __init__(self, database: Database | None = None):
        self.db = database or db
        self.logger = get_logger(__name__)

    def ensure_user(self, user_id: str) -> UserAccount:
        """Load the user, creating a bare row for ids the identity provider vouched for."""
        try:
            with self.db.session() as session:
                user = session.get(UserAccount, user_id)
                if user is None:
                    user = UserAccount(id=user_id, subscription_status=SubscriptionStatus.NONE.value)
                    session.add(user)
                    session.flush()
                return user
        except SQLAlchemyError as e:
            self.logger.error("user_load_failed", user_id=user_id, error=str(e))
            raise PersistenceError()

    def record_customer(self, user_id: str, customer_id: str) -> None:
        """Store the Stripe customer id as soon as it exists so retries reuse it."""
        try:
            with self.db.session() as session:
                user = session.get(UserAccount, user_id)
                user.stripe_customer_id = customer_id
        except SQLAlchemyError as e:
            self.logger.error("customer_record_failed", user_id=user_id, customer_id=customer_id, error=str(e))
            raise PersistenceError()

    def start_trial(
        self,
        user_id: str,
        customer_id: str,
        subscription_id: str,
        plan: SubscriptionPlan,
        trial_days: int,
        now: datetime | None = None,
    ) -> UserAccount:
        """Persist a freshly provisioned subscription as trialing.

        A webhook for the same subscription may have got here first, in
        which case the stored status is kept.

        Raises:
            SubscriptionExistsError: User holds a different live subscription
            PersistenceError: Database failure
        """
        now = now or datetime.utcnow()
        try:
            with self.db.session() as session:
                user = session.query(UserAccount).filter(
                    UserAccount.id == user_id
                ).with_for_update().one()

                current = SubscriptionStatus(user.subscription_status)
                same_subscription = user.stripe_subscription_id == subscription_id
                if current in LIVE_STATUSES and not same_subscription:
                    raise SubscriptionExistsError()

                user.stripe_customer_id = customer_id
                user.stripe_subscription_id = subscription_id
                user.subscription_plan = SubscriptionPlan(plan).value
                user.trial_ends_at = now + timedelta(days=trial_days)
                if not (same_subscription and current in LIVE_STATUSES):
                    user.subscription_status = SubscriptionStatus.TRIALING.value
                user.updated_at = now
                return user
        except SQLAlchemyError as e:
            self.logger.error("subscription_persist_failed", user_id=user_id, subscription_id=subscription_id, error=str(e))
            raise PersistenceError()

    def apply_transition(
        self,
        user_id: str,
        target: SubscriptionStatus,
        subscription_id: str | None = None,
        plan: str | None = None,
    ) -> bool:
        """Apply a status change reported by Stripe.

        Args:
            user_id: User from the subscription metadata
            target: Status implied by the notification
            subscription_id: Subscription the notification is about
            plan: Plan from the subscription metadata

        Returns:
            True if the stored status changed
        """
        with self.db.session() as session:
            user = session.query(UserAccount).filter(
                UserAccount.id == user_id
            ).with_for_update().first()

            if user is None:
                self.logger.warning("subscription_transition_unknown_user", user_id=user_id)
                return False

            if subscription_id and user.stripe_subscription_id and user.stripe_subscription_id != subscription_id:
                self.logger.info(
                    "subscription_transition_stale",
                    user_id=user_id,
                    subscription_id=subscription_id,
                    current_subscription_id=user.stripe_subscription_id,
                )
                return False

            current = SubscriptionStatus(user.subscription_status)
            if current == target:
                return False

            if not can_transition(current, target):
                self.logger.info(
                    "subscription_transition_ignored",
                    user_id=user_id,
                    current=current.value,
                    target=target.value,
                )
                return False

            user.subscription_status = target.value
            if subscription_id and not user.stripe_subscription_id:
                # Provisioning timed out locally but Stripe created the subscription
                user.stripe_subscription_id = subscription_id
            if plan in {p.value for p in SubscriptionPlan}:
                user.subscription_plan = plan
            user.updated_at = datetime.utcnow()

        self.logger.info(
            "subscription_status_changed",
            user_id=user_id,
            previous=current.value,
            status=target.value,
            subscription_id=subscription_id,
        )
        return True

    def get_status(self, user_id: str, now: datetime | None = None) -> SubscriptionStatusResponse:
        """Summarize a user's subscription for the client."""
        now = now or datetime.utcnow()
        user = self.ensure_user(user_id)
        status = SubscriptionStatus(user.subscription_status)

        has_active = status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING) or (
            status != SubscriptionStatus.CANCELED
            and user.trial_ends_at is not None
            and user.trial_ends_at > now
        )

        return SubscriptionStatusResponse(
            has_active_subscription=has_active,
            subscription_status=status,
            subscription_plan=user.subscription_plan,
            trial_ends_at=user.trial_ends_at,
        )
