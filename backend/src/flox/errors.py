"""Error taxonomy shared by the referral and subscription services."""

from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable failure codes returned to clients."""
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    ALREADY_USED = "already_used"
    INVALID_PLAN = "invalid_plan"
    SUBSCRIPTION_EXISTS = "subscription_exists"
    BILLING_PROVIDER_UNAVAILABLE = "billing_provider_unavailable"
    BILLING_PROVIDER_REJECTED = "billing_provider_rejected"
    PERSISTENCE_FAILURE = "persistence_failure"


class FloxError(Exception):
    """Base error for failures surfaced to API callers.

    The message is always safe to show to the user; provider or database
    details belong in the logs only.
    """

    code: ErrorCode = ErrorCode.PERSISTENCE_FAILURE
    http_status: int = 500
    retryable: bool = False
    default_message: str = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "error": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
        }


class ReferralCodeInvalidError(FloxError):
    """Raised when a referral code fails validation during a state change."""

    http_status = 400

    def __init__(self, code: ErrorCode, message: str):
        self.code = code
        if code == ErrorCode.NOT_FOUND:
            self.http_status = 404
        super().__init__(message)


class AlreadyUsedError(FloxError):
    """Raised when the user has already redeemed the referral code."""

    code = ErrorCode.ALREADY_USED
    http_status = 409
    default_message = "You have already used this referral code"


class InvalidPlanError(FloxError):
    """Raised when the requested plan is not offered."""

    code = ErrorCode.INVALID_PLAN
    http_status = 400

    def __init__(self, plan: str):
        self.plan = plan
        super().__init__("Invalid plan selected. Choose monthly or yearly.")


class SubscriptionExistsError(FloxError):
    """Raised when the user already holds a live subscription."""

    code = ErrorCode.SUBSCRIPTION_EXISTS
    http_status = 409
    default_message = "You already have an active subscription"


class BillingProviderUnavailableError(FloxError):
    """Payment provider could not be reached or is not configured."""

    code = ErrorCode.BILLING_PROVIDER_UNAVAILABLE
    http_status = 503
    retryable = True
    default_message = "Payment processing is temporarily unavailable. Please try again shortly."


class BillingProviderRejectedError(FloxError):
    """Payment provider refused the request (e.g. invalid payment method)."""

    code = ErrorCode.BILLING_PROVIDER_REJECTED
    http_status = 402
    default_message = "Your payment could not be processed. Please check your payment details."


class PersistenceError(FloxError):
    """Database operation failed."""

    code = ErrorCode.PERSISTENCE_FAILURE
    http_status = 503
    retryable = True
    default_message = "We could not save your changes. Please try again."
