"""Identity provider token verification.

Flox does not authenticate users itself. The identity provider issues
HS256 JWTs signed with a shared secret; the ``sub`` claim is the user id
and is trusted as-is once the signature checks out.
"""

from datetime import datetime, timedelta
from typing import Any

from jose import JWTError, jwt
from sqlalchemy.exc import IntegrityError

from flox.auth.models import SubscriptionStatus, UserAccount
from flox.logging_config import get_logger
from flox.settings import settings
from flox.storage.db import Database, db

logger = get_logger(__name__)

JWT_EXPIRE_HOURS = 2

PROFILE_CLAIMS = ("email", "first_name", "last_name")


class IdentityService:
    """Maps identity provider tokens onto local user accounts."""

    def __init__(self, database: Database | None = None):
        self.db = database or db
        self.logger = get_logger(__name__)

    # ==================== JWT TOKENS ====================

    def create_access_token(
        self,
        user_id: str,
        email: str | None = None,
        expires_delta: timedelta | None = None,
        **claims: Any,
    ) -> str:
        """Create a token the way the identity provider does.

        Used by the CLI and tests; production tokens come from the provider.

        Args:
            user_id: Subject claim
            email: Optional email claim
            expires_delta: Optional expiration time
            **claims: Extra claims (first_name, last_name)

        Returns:
            JWT token string
        """
        if expires_delta is None:
            expires_delta = timedelta(hours=JWT_EXPIRE_HOURS)

        payload = {
            "sub": user_id,
            "email": email,
            "exp": datetime.utcnow() + expires_delta,
            "iat": datetime.utcnow(),
            **claims,
        }
        return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    def verify_token(self, token: str) -> dict[str, Any] | None:
        """Verify and decode JWT token.

        Args:
            token: JWT token string

        Returns:
            Token payload or None if invalid
        """
        try:
            return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        except JWTError as e:
            self.logger.debug("token_verification_failed", error=str(e))
            return None

    # ==================== USER MANAGEMENT ====================

    def upsert_user(self, claims: dict[str, Any]) -> UserAccount:
        """Create or refresh the local user row from token claims.

        Only writes when the row is new or a claim differs from what is
        stored. An email already held by another account is left off.

        Args:
            claims: Verified token payload

        Returns:
            User account
        """
        user_id = str(claims["sub"])
        profile = {field: claims[field] for field in PROFILE_CLAIMS if claims.get(field)}

        try:
            return self._apply_profile(user_id, profile)
        except IntegrityError:
            self.logger.warning("user_email_conflict", user_id=user_id, email=profile.get("email"))
            profile.pop("email", None)
            return self._apply_profile(user_id, profile)

    def _apply_profile(self, user_id: str, profile: dict[str, Any]) -> UserAccount:
        with self.db.session() as session:
            user = session.get(UserAccount, user_id)
            if user is None:
                user = UserAccount(id=user_id, subscription_status=SubscriptionStatus.NONE.value, **profile)
                session.add(user)
                session.flush()
                self.logger.info("user_created", user_id=user_id)
                return user

            changed = {field: value for field, value in profile.items() if getattr(user, field) != value}
            if changed:
                for field, value in changed.items():
                    setattr(user, field, value)
                session.flush()
                self.logger.info("user_profile_updated", user_id=user_id, fields=sorted(changed))
            return user

    def get_user_by_id(self, user_id: str) -> UserAccount | None:
        """Get user by ID.

        Args:
            user_id: User ID

        Returns:
            User account or None
        """
        with self.db.session() as session:
            return session.get(UserAccount, user_id)

    def get_user_from_token(self, token: str) -> UserAccount | None:
        """Get user from JWT token.

        Args:
            token: JWT token string

        Returns:
            User account or None
        """
        payload = self.verify_token(token)
        if not payload or not payload.get("sub"):
            return None

        return self.upsert_user(payload)
