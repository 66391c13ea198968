"""Authentication API v1 endpoints."""

from fastapi import APIRouter, Depends

from flox.auth.middleware import require_auth
from flox.auth.models import User, UserAccount

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/user", response_model=User)
def get_me(user: UserAccount = Depends(require_auth)):
    """Current user, as known from the identity provider token."""
    return user
