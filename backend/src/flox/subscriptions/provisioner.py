"""Subscription provisioning: plan + optional referral code -> Stripe subscription."""

from collections.abc import Callable
from datetime import datetime, timedelta

from flox.auth.models import SubscriptionStatus
from flox.billing.gateway import BillingGateway, StripeGateway
from flox.billing.plans import get_plan
from flox.errors import AlreadyUsedError, FloxError, SubscriptionExistsError
from flox.logging_config import get_logger
from flox.referral.models import normalize_code
from flox.referral.service import ReferralService
from flox.storage.db import Database, db
from flox.subscriptions.discounts import compute_discount_terms
from flox.subscriptions.models import ProvisionResult
from flox.subscriptions.status import LIVE_STATUSES, SubscriptionStatusService

logger = get_logger(__name__)

REDEMPTION_WARNING = (
    "Your subscription is active, but we could not record your referral code. "
    "Contact support if the discount is missing."
)


class SubscriptionProvisioner:
    """Creates Stripe subscriptions that reflect the chosen plan and discount.

    Steps: validate plan and code, compute discount terms, ensure a Stripe
    customer, create coupon and subscription, redeem the code, store the
    trial on the user. Nothing local changes before Stripe has answered,
    except the customer id, which is kept so a retry reuses the customer.
    """

    def __init__(
        self,
        gateway: BillingGateway | None = None,
        referral_service: ReferralService | None = None,
        status_service: SubscriptionStatusService | None = None,
        database: Database | None = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.db = database or db
        self.clock = clock
        self.gateway = gateway or StripeGateway()
        self.referral_service = referral_service or ReferralService(self.db)
        self.status_service = status_service or SubscriptionStatusService(self.db)
        self.logger = get_logger(__name__)

    def provision(
        self,
        user_id: str,
        plan: str,
        referral_code: str | None = None,
        now: datetime | None = None,
    ) -> ProvisionResult:
        """Start a trialing subscription for a user.

        Args:
            user_id: Authenticated user
            plan: "monthly" or "yearly"
            referral_code: Optional code typed by the user
            now: Quote time for plan and code checks (defaults to the clock).
                The code is redeemed at the clock time after Stripe answers.

        Returns:
            ProvisionResult

        Raises:
            InvalidPlanError: Unknown plan
            ReferralCodeInvalidError: Code not found, inactive, expired or used up
            AlreadyUsedError: User already redeemed the code
            SubscriptionExistsError: User already has a live subscription
            BillingProviderUnavailableError / BillingProviderRejectedError: Stripe failure
            PersistenceError: Database failure
        """
        now = now or self.clock()
        selected_plan = get_plan(plan)
        code = normalize_code(referral_code) if referral_code and referral_code.strip() else None

        user = self.status_service.ensure_user(user_id)
        if SubscriptionStatus(user.subscription_status) in LIVE_STATUSES:
            raise SubscriptionExistsError()

        # Quote-time validation; redeem() validates again at commit
        validated_code = None
        if code:
            validation = self.referral_service.validate_code(code, now)
            validation.raise_for_invalid()
            validated_code = validation.referral_code
            if self.referral_service.has_user_used(user_id, validated_code.id):
                raise AlreadyUsedError()

        terms = compute_discount_terms(validated_code)

        customer_id = user.stripe_customer_id
        if not customer_id:
            customer_id = self.gateway.create_customer(
                email=user.email,
                name=user.display_name,
                metadata={"user_id": user_id, "referral_code": code or ""},
            )
            self.status_service.record_customer(user_id, customer_id)

        coupon_id = None
        if terms.needs_coupon:
            coupon_id = self.gateway.create_coupon(
                name=terms.coupon_name,
                percent_off=terms.percent_off,
                amount_off=terms.amount_off,
            )

        metadata = {
            "user_id": user_id,
            "plan": selected_plan.id.value,
            "referral_code": code or "",
        }
        if terms.free:
            metadata["free_subscription"] = "true"

        subscription = self.gateway.create_subscription(
            customer_id=customer_id,
            price_id=selected_plan.price_id,
            trial_period_days=terms.trial_days,
            metadata=metadata,
            coupon_id=coupon_id,
        )

        # The Stripe subscription is not rolled back if this fails.
        # Redeem against a fresh clock: the code may have expired while Stripe was busy.
        redemption_recorded = True
        warning = None
        if code:
            try:
                self.referral_service.redeem(
                    code, user_id, subscription_id=subscription.id, now=self.clock()
                )
            except FloxError as e:
                redemption_recorded = False
                warning = REDEMPTION_WARNING
                self.logger.warning(
                    "referral_redemption_failed_after_subscription",
                    user_id=user_id,
                    code=code,
                    subscription_id=subscription.id,
                    reason=e.code.value,
                )

        self.status_service.start_trial(
            user_id,
            customer_id=customer_id,
            subscription_id=subscription.id,
            plan=selected_plan.id,
            trial_days=terms.trial_days,
            now=now,
        )

        self.logger.info(
            "subscription_provisioned",
            user_id=user_id,
            plan=selected_plan.id.value,
            subscription_id=subscription.id,
            referral_code=code,
            trial_days=terms.trial_days,
            coupon_id=coupon_id,
        )

        return ProvisionResult(
            subscription_id=subscription.id,
            client_secret=subscription.client_secret,
            status=subscription.status or SubscriptionStatus.TRIALING.value,
            plan=selected_plan.id,
            trial_days=terms.trial_days,
            trial_ends_at=now + timedelta(days=terms.trial_days),
            discount=terms.applied_discount(),
            redemption_recorded=redemption_recorded,
            warning=warning,
        )
