# wine_api/routes/auth.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from wine_api.auth.google import (
    IdentityProviderNotConfiguredError,
    IdentityProviderUnavailableError,
    InvalidIdentityTokenError,
)
from wine_api.auth.identity import Identity
from wine_api.core.config import settings
from wine_api.core.database import get_db
from wine_api.core.security import get_token_service
from wine_api.dependencies.auth import get_identity
from wine_api.schemas.auth import AuthOut, DevLoginIn, DevLoginOut, GoogleAuthIn
from wine_api.services.auth import login_with_identity_token
from wine_api.services.users import PersistenceError, get_user_by_email

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _require_dev_login() -> None:
    # Hidden entirely unless explicitly enabled (never in prod).
    if not settings.ENABLE_DEV_LOGIN or settings.is_prod:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")


@router.post("/google", response_model=AuthOut)
def authenticate_with_google(payload: GoogleAuthIn, db: Session = Depends(get_db)):
    """
    Exchange a Google ID token for a session token.

    Use the returned token as ``Authorization: Bearer <token>`` on later requests.
    """
    try:
        result = login_with_identity_token(db, payload.google_id_token)
    except InvalidIdentityTokenError as exc:
        # Provider detail stays in the logs.
        logger.warning("Google login rejected: %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Google ID token")
    except IdentityProviderUnavailableError as exc:
        logger.error("Google login unavailable: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Identity provider unavailable, try again later",
        )
    except IdentityProviderNotConfiguredError as exc:
        logger.error("Google login not configured: %s", exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
    except PersistenceError:
        logger.exception("Google login failed while saving the user")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")

    return AuthOut(
        token=result.token,
        user_id=result.user_id,
        email=result.email,
        display_name=result.display_name,
        avatar_url=result.avatar_url,
    )


@router.post("/login", response_model=DevLoginOut, dependencies=[Depends(_require_dev_login)])
def dev_login(payload: DevLoginIn, db: Session = Depends(get_db)):
    """
    Development-only email login. Issues a session token WITHOUT verifying
    any identity; never enable outside local development.
    """
    email = payload.email.strip().lower()
    logger.warning("Dev email login used for %s", email)

    user = get_user_by_email(db, email)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    token = get_token_service().issue(user.id)
    return DevLoginOut(
        token=token,
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
    )


@router.get("/debug/identity", dependencies=[Depends(_require_dev_login)])
def debug_identity(identity: Identity = Depends(get_identity)):
    return identity.to_debug_dict()
