"""Mapping of referral discounts onto Stripe trial and coupon settings."""

from dataclasses import dataclass

from flox.referral.models import DiscountType, ReferralCode
from flox.settings import settings
from flox.subscriptions.models import AppliedDiscount


@dataclass(frozen=True)
class DiscountTerms:
    """Trial length and optional coupon for a new subscription."""

    trial_days: int
    discount_type: DiscountType | None = None
    percent_off: int | None = None
    amount_off: int | None = None
    extra_trial_days: int = 0
    free: bool = False

    @property
    def needs_coupon(self) -> bool:
        # A 0% code carries no price change, so Stripe gets no coupon
        return bool(self.percent_off) or bool(self.amount_off)

    @property
    def coupon_name(self) -> str:
        if self.percent_off is not None:
            return f"Referral Discount {self.percent_off}%"
        return f"Referral Discount {self.amount_off / 100:.2f} {settings.currency.upper()}"

    def applied_discount(self) -> AppliedDiscount | None:
        """Discount summary for the client, or None without a code."""
        if self.discount_type is None:
            return None

        if self.free:
            label = f"Free for {self.trial_days} days"
        elif self.percent_off is not None:
            label = f"{self.percent_off}% off"
        elif self.amount_off is not None:
            label = f"{self.amount_off / 100:.2f} {settings.currency.upper()} off"
        else:
            label = f"{self.extra_trial_days} extra trial days"

        return AppliedDiscount(
            type=self.discount_type,
            percent_off=self.percent_off,
            amount_off=self.amount_off,
            currency=settings.currency if self.amount_off is not None else None,
            extra_trial_days=self.extra_trial_days,
            free=self.free,
            label=label,
        )


def compute_discount_terms(referral_code: ReferralCode | None) -> DiscountTerms:
    """Derive trial and coupon settings from a validated referral code.

    Args:
        referral_code: Valid code, or None when no code was entered

    Returns:
        DiscountTerms
    """
    base_trial = settings.base_trial_days

    if referral_code is None:
        return DiscountTerms(trial_days=base_trial)

    discount_type = DiscountType(referral_code.discount_type)
    value = referral_code.discount_value or 0

    if discount_type == DiscountType.PERCENTAGE:
        return DiscountTerms(trial_days=base_trial, discount_type=discount_type, percent_off=value)

    if discount_type == DiscountType.FIXED:
        return DiscountTerms(trial_days=base_trial, discount_type=discount_type, amount_off=value)

    if discount_type == DiscountType.FREE:
        # No coupon: a year-long trial stands in for a 100% discount
        return DiscountTerms(trial_days=settings.free_trial_days, discount_type=discount_type, free=True)

    # TRIAL_EXTENSION
    return DiscountTerms(
        trial_days=base_trial + value,
        discount_type=discount_type,
        extra_trial_days=value,
    )
