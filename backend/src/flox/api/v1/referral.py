"""Referral code API v1 endpoints."""

from datetime import datetime

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from flox.api.deps import get_referral_service
from flox.api.rate_limit import limiter
from flox.auth.middleware import require_auth
from flox.auth.models import UserAccount
from flox.errors import AlreadyUsedError, ErrorCode
from flox.logging_config import get_logger
from flox.referral.service import ReferralService

logger = get_logger(__name__)

router = APIRouter(prefix="/referral-codes", tags=["referral"])


# ==================== MODELS ====================


class ValidateCodeRequest(BaseModel):
    """Request to validate a referral code."""
    code: str = Field(..., min_length=1, max_length=50)


class ValidateCodeResponse(BaseModel):
    """Response from code validation.

    Invalid codes are a normal outcome, reported with a reason and message.
    """
    valid: bool
    code: str | None = None
    description: str | None = None
    discount_type: str | None = None
    discount_value: int | None = None
    reason: ErrorCode | None = None
    message: str | None = None


class ReferralUsageResponse(BaseModel):
    """A referral code the user has redeemed."""
    code: str
    description: str | None
    discount_type: str
    discount_value: int | None
    subscription_id: str | None
    used_at: datetime


# ==================== ENDPOINTS ====================


@router.post("/validate", response_model=ValidateCodeResponse)
@limiter.limit("30/minute")
def validate_referral_code(
    request: Request,
    body: ValidateCodeRequest,
    user: UserAccount = Depends(require_auth),
    referral_service: ReferralService = Depends(get_referral_service),
):
    """Validate a referral code for display on the plan selection screen.

    Read-only: the code is checked again when the subscription is created.
    """
    result = referral_service.validate_code(body.code)

    if not result.valid:
        logger.info("referral_code_rejected", user_id=user.id, reason=result.reason.value)
        return ValidateCodeResponse(valid=False, reason=result.reason, message=result.message)

    referral_code = result.referral_code
    if referral_service.has_user_used(user.id, referral_code.id):
        return ValidateCodeResponse(
            valid=False,
            code=referral_code.code,
            reason=ErrorCode.ALREADY_USED,
            message=AlreadyUsedError.default_message,
        )

    return ValidateCodeResponse(
        valid=True,
        code=referral_code.code,
        description=referral_code.description,
        discount_type=referral_code.discount_type,
        discount_value=referral_code.discount_value,
    )


@router.get("/usage", response_model=list[ReferralUsageResponse])
def get_referral_usage(
    user: UserAccount = Depends(require_auth),
    referral_service: ReferralService = Depends(get_referral_service),
):
    """List the referral codes the current user has redeemed."""
    return [ReferralUsageResponse(**usage) for usage in referral_service.get_user_usage(user.id)]
