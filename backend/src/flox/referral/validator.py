"""Referral code validation rules.

Pure decision logic: given a looked-up code (or None) and the current
time, decide whether the code may be applied. Rules are checked in a
fixed order and the first failing rule wins.
"""

from dataclasses import dataclass
from datetime import datetime

from flox.errors import ErrorCode, ReferralCodeInvalidError
from flox.referral.models import ReferralCode

INVALID_MESSAGES = {
    ErrorCode.NOT_FOUND: "Invalid referral code",
    ErrorCode.INACTIVE: "Referral code is no longer active",
    ErrorCode.EXPIRED: "Referral code has expired",
    ErrorCode.USAGE_LIMIT_REACHED: "Referral code has reached maximum uses",
}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating a referral code."""

    valid: bool
    referral_code: ReferralCode | None = None
    reason: ErrorCode | None = None
    message: str | None = None

    @classmethod
    def ok(cls, referral_code: ReferralCode) -> "ValidationResult":
        return cls(valid=True, referral_code=referral_code)

    @classmethod
    def invalid(cls, reason: ErrorCode) -> "ValidationResult":
        return cls(valid=False, reason=reason, message=INVALID_MESSAGES[reason])

    def raise_for_invalid(self) -> None:
        """Turn an invalid result into the matching error."""
        if not self.valid:
            raise ReferralCodeInvalidError(self.reason, self.message)


def validate_code(referral_code: ReferralCode | None, now: datetime) -> ValidationResult:
    """Check a referral code against its active, expiry and usage rules.

    Args:
        referral_code: Code looked up by its normalized value, or None
        now: Current time (naive UTC, like the stored timestamps)

    Returns:
        ValidationResult
    """
    if referral_code is None:
        return ValidationResult.invalid(ErrorCode.NOT_FOUND)

    if not referral_code.is_active:
        return ValidationResult.invalid(ErrorCode.INACTIVE)

    if referral_code.expires_at is not None and now > referral_code.expires_at:
        return ValidationResult.invalid(ErrorCode.EXPIRED)

    if referral_code.max_uses is not None and (referral_code.current_uses or 0) >= referral_code.max_uses:
        return ValidationResult.invalid(ErrorCode.USAGE_LIMIT_REACHED)

    return ValidationResult.ok(referral_code)
