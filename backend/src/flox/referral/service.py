"""Referral service: code store, validation and redemption."""

from datetime import datetime
from typing import Any

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from flox.errors import AlreadyUsedError, ErrorCode, PersistenceError, ReferralCodeInvalidError
from flox.logging_config import get_logger
from flox.referral.models import DiscountType, ReferralCode, ReferralCodeUsage, normalize_code
from flox.referral.validator import INVALID_MESSAGES, ValidationResult, validate_code
from flox.storage.db import Database, db

logger = get_logger(__name__)


class ReferralService:
    """Service for managing referral codes and their redemptions."""

    def __init__(self, database: Database | None = None):
        """Initialize referral service."""
        self.db = database or db
        self.logger = get_logger(__name__)

    # ==================== LOOKUP & VALIDATION ====================

    def get_by_code(self, code: str) -> ReferralCode | None:
        """Look up a referral code by its normalized value.

        Args:
            code: Raw code as typed by the user

        Returns:
            ReferralCode or None
        """
        if not code or not code.strip():
            return None

        with self.db.session() as session:
            return session.query(ReferralCode).filter(
                ReferralCode.code == normalize_code(code)
            ).first()

    def validate_code(self, code: str, now: datetime | None = None) -> ValidationResult:
        """Validate a referral code without changing anything.

        Args:
            code: Raw code as typed by the user
            now: Evaluation time (defaults to current UTC time)

        Returns:
            ValidationResult
        """
        return validate_code(self.get_by_code(code), now or datetime.utcnow())

    def has_user_used(self, user_id: str, referral_code_id: str) -> bool:
        """Check whether a user already redeemed a code.

        Args:
            user_id: User ID
            referral_code_id: ReferralCode ID

        Returns:
            True if a usage row exists
        """
        with self.db.session() as session:
            existing = session.query(ReferralCodeUsage.id).filter(
                ReferralCodeUsage.referral_code_id == referral_code_id,
                ReferralCodeUsage.user_id == user_id,
            ).first()
            return existing is not None

    # ==================== REDEMPTION ====================

    def redeem(
        self,
        code: str,
        user_id: str,
        subscription_id: str | None = None,
        now: datetime | None = None,
    ) -> ReferralCodeUsage:
        """Record a user's use of a referral code.

        Re-validates the code and increments its counter in one transaction.
        The increment is conditional on the cap so concurrent redemptions
        can never push ``current_uses`` past ``max_uses``.

        Args:
            code: Raw code
            user_id: User redeeming the code
            subscription_id: Stripe subscription the code was applied to
            now: Evaluation time (defaults to current UTC time)

        Returns:
            The new ReferralCodeUsage row

        Raises:
            ReferralCodeInvalidError: Code is no longer valid
            AlreadyUsedError: User already redeemed this code
            PersistenceError: Database failure
        """
        now = now or datetime.utcnow()
        normalized = normalize_code(code)

        try:
            with self.db.session() as session:
                # SELECT FOR UPDATE serializes redemptions of the same code
                referral_code = session.query(ReferralCode).filter(
                    ReferralCode.code == normalized
                ).with_for_update().first()

                validate_code(referral_code, now).raise_for_invalid()

                existing = session.query(ReferralCodeUsage.id).filter(
                    ReferralCodeUsage.referral_code_id == referral_code.id,
                    ReferralCodeUsage.user_id == user_id,
                ).first()
                if existing:
                    raise AlreadyUsedError()

                result = session.execute(
                    update(ReferralCode)
                    .where(
                        ReferralCode.id == referral_code.id,
                        or_(
                            ReferralCode.max_uses.is_(None),
                            ReferralCode.current_uses < ReferralCode.max_uses,
                        ),
                    )
                    .values(current_uses=ReferralCode.current_uses + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise ReferralCodeInvalidError(
                        ErrorCode.USAGE_LIMIT_REACHED,
                        INVALID_MESSAGES[ErrorCode.USAGE_LIMIT_REACHED],
                    )

                usage = ReferralCodeUsage(
                    referral_code_id=referral_code.id,
                    user_id=user_id,
                    subscription_id=subscription_id,
                    used_at=now,
                )
                session.add(usage)
                session.flush()
        except IntegrityError:
            # Unique (code, user) constraint: a parallel redemption by the same user won
            raise AlreadyUsedError()
        except SQLAlchemyError as e:
            self.logger.error("referral_redeem_db_error", code=normalized, user_id=user_id, error=str(e))
            raise PersistenceError()

        self.logger.info(
            "referral_code_redeemed",
            code=normalized,
            user_id=user_id,
            subscription_id=subscription_id,
        )
        return usage

    def get_user_usage(self, user_id: str) -> list[dict[str, Any]]:
        """List the codes a user has redeemed, newest first.

        Args:
            user_id: User ID

        Returns:
            List of usage dicts
        """
        with self.db.session() as session:
            rows = (
                session.query(ReferralCodeUsage, ReferralCode)
                .join(ReferralCode, ReferralCode.id == ReferralCodeUsage.referral_code_id)
                .filter(ReferralCodeUsage.user_id == user_id)
                .order_by(ReferralCodeUsage.used_at.desc())
                .all()
            )

            return [
                {
                    "code": referral_code.code,
                    "description": referral_code.description,
                    "discount_type": referral_code.discount_type,
                    "discount_value": referral_code.discount_value,
                    "subscription_id": usage.subscription_id,
                    "used_at": usage.used_at,
                }
                for usage, referral_code in rows
            ]

    # ==================== ADMINISTRATION ====================

    def create_code(
        self,
        code: str,
        discount_type: DiscountType | str,
        discount_value: int | None = None,
        description: str | None = None,
        max_uses: int | None = None,
        expires_at: datetime | None = None,
    ) -> ReferralCode:
        """Create a new referral code.

        Args:
            code: Code text (stored uppercase)
            discount_type: percentage, fixed, free or trial_extension
            discount_value: Percent, minor currency units or extra days
            description: Text shown to the user
            max_uses: Optional usage cap
            expires_at: Optional expiry (naive UTC)

        Returns:
            ReferralCode

        Raises:
            ValueError: If the terms are inconsistent or the code exists
        """
        normalized = normalize_code(code)
        discount_type = DiscountType(discount_type)

        if not normalized:
            raise ValueError("Referral code must not be empty")
        if discount_type == DiscountType.PERCENTAGE and not (discount_value is not None and 0 <= discount_value <= 100):
            raise ValueError("Percentage discount must be between 0 and 100")
        if discount_type in (DiscountType.FIXED, DiscountType.TRIAL_EXTENSION) and not (discount_value and discount_value > 0):
            raise ValueError(f"{discount_type.value} discount requires a positive value")
        if max_uses is not None and max_uses < 0:
            raise ValueError("max_uses must not be negative")

        try:
            with self.db.session() as session:
                referral_code = ReferralCode(
                    code=normalized,
                    discount_type=discount_type.value,
                    discount_value=discount_value,
                    description=description,
                    max_uses=max_uses,
                    current_uses=0,
                    is_active=True,
                    expires_at=expires_at,
                )
                session.add(referral_code)
                session.flush()
        except IntegrityError:
            raise ValueError(f"Referral code already exists: {normalized}")

        self.logger.info(
            "referral_code_created",
            code=normalized,
            discount_type=discount_type.value,
            discount_value=discount_value,
            max_uses=max_uses,
        )
        return referral_code

    def seed_codes(self, codes: list[dict[str, Any]]) -> list[str]:
        """Bulk-create codes, skipping ones that already exist.

        Args:
            codes: Dicts with create_code keyword arguments

        Returns:
            Codes that were created
        """
        created = []
        for code_data in codes:
            if self.get_by_code(code_data["code"]) is not None:
                self.logger.info("referral_code_exists", code=normalize_code(code_data["code"]))
                continue
            self.create_code(**code_data)
            created.append(normalize_code(code_data["code"]))
        return created

    def deactivate_code(self, code: str) -> bool:
        """Permanently retire a code.

        Args:
            code: Code text

        Returns:
            True if the code existed
        """
        with self.db.session() as session:
            referral_code = session.query(ReferralCode).filter(
                ReferralCode.code == normalize_code(code)
            ).first()
            if not referral_code:
                return False

            referral_code.is_active = False

        self.logger.info("referral_code_deactivated", code=normalize_code(code))
        return True

    def list_codes(self) -> list[ReferralCode]:
        """List all referral codes, newest first."""
        with self.db.session() as session:
            return session.query(ReferralCode).order_by(ReferralCode.created_at.desc()).all()
