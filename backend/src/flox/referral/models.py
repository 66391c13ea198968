"""Referral code database models."""

import secrets
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from flox.storage.db import Base


def generate_id() -> str:
    """Opaque URL-safe identifier for referral rows."""
    return secrets.token_urlsafe(16)


def normalize_code(code: str) -> str:
    """Codes are matched case-insensitively and stored uppercase."""
    return code.strip().upper()


class DiscountType(str, Enum):
    """How a referral code changes the subscription."""
    PERCENTAGE = "percentage"  # discount_value = percent off (0-100)
    FIXED = "fixed"  # discount_value = amount off in minor currency units
    FREE = "free"  # discount_value unused
    TRIAL_EXTENSION = "trial_extension"  # discount_value = extra trial days


class ReferralCode(Base):
    """Discount code that can be entered on the plan selection screen.

    Codes are never deleted; they are retired by clearing ``is_active``.
    ``current_uses`` is only ever incremented by ``ReferralService.redeem``.
    """
    __tablename__ = "referral_codes"

    id = Column(String(32), primary_key=True, default=generate_id)
    code = Column(String(50), unique=True, nullable=False, index=True)

    # Discount terms
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Integer, nullable=True)
    description = Column(String(255), nullable=True)

    # Limits
    max_uses = Column(Integer, nullable=True)  # NULL = unlimited
    current_uses = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime, nullable=True)  # NULL = never expires

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    usages = relationship("ReferralCodeUsage", back_populates="referral_code")

    def __repr__(self):
        return f"<ReferralCode(code={self.code}, uses={self.current_uses}/{self.max_uses})>"


class ReferralCodeUsage(Base):
    """Ledger entry for one redemption of a code by one user.

    Immutable once written.
    """
    __tablename__ = "referral_code_usage"
    __table_args__ = (
        UniqueConstraint("referral_code_id", "user_id", name="uq_referral_code_usage_code_user"),
    )

    id = Column(String(32), primary_key=True, default=generate_id)
    referral_code_id = Column(String(32), ForeignKey("referral_codes.id"), nullable=False, index=True)
    user_id = Column(String(64), ForeignKey("user_accounts.id"), nullable=False, index=True)
    subscription_id = Column(String(255), nullable=True)
    used_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    referral_code = relationship("ReferralCode", back_populates="usages")

    def __repr__(self):
        return f"<ReferralCodeUsage(code_id={self.referral_code_id}, user={self.user_id})>"
