"""Referral code module for Flox.

Codes grant a discount or a longer trial on the first subscription:
- percentage / fixed: recurring Stripe coupon
- free: one year trial
- trial_extension: extra trial days
"""

from flox.referral.models import DiscountType, ReferralCode, ReferralCodeUsage
from flox.referral.service import ReferralService
from flox.referral.validator import ValidationResult, validate_code

__all__ = [
    "DiscountType",
    "ReferralCode",
    "ReferralCodeUsage",
    "ReferralService",
    "ValidationResult",
    "validate_code",
]
