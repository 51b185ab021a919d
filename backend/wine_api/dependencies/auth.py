# wine_api/dependencies/auth.py
from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from wine_api.auth.identity import Identity
from wine_api.core.database import get_db
from wine_api.models.user import User
from wine_api.services.users import get_user_by_id


def _unauthorized(detail: str = "Authentication required") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_identity(request: Request) -> Identity:
    """Identity attached by the identity middleware (unauthenticated if none)."""
    identity = getattr(request.state, "identity", None)
    if isinstance(identity, Identity):
        return identity
    return Identity.unauthenticated()


def require_identity(identity: Identity = Depends(get_identity)) -> Identity:
    # Same response for every failure reason; clients don't learn why.
    if not identity.is_authenticated:
        raise _unauthorized()
    return identity


def get_current_user(
    identity: Identity = Depends(require_identity),
    db: Session = Depends(get_db),
) -> User:
    """
    Loads the authenticated caller's User row.
    Raises 401 when the request has no principal or the user has since been deleted.
    """
    user = get_user_by_id(db, identity.user_id)
    if user is None:
        raise _unauthorized()
    return user
