"""Authentication boundary for Flox - tokens come from the identity provider."""

from flox.auth.identity import IdentityService
from flox.auth.middleware import get_current_user, require_auth
from flox.auth.models import SubscriptionPlan, SubscriptionStatus, User, UserAccount

__all__ = [
    "User",
    "UserAccount",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "IdentityService",
    "get_current_user",
    "require_auth",
]
