# wine_api/services/auth.py
"""
Login orchestration: Google ID token -> local user -> session token.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session

from wine_api.auth.google import GoogleIdentityClaims, verify_google_id_token
from wine_api.core.security import TokenService, get_token_service
from wine_api.services.users import IdentityReconciler

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthResult:
    token: str
    user_id: str
    email: str
    display_name: str
    avatar_url: str | None


def login_with_identity_token(
    db: Session,
    identity_token: str,
    *,
    verifier: Callable[[str], GoogleIdentityClaims] | None = None,
    token_service: TokenService | None = None,
) -> AuthResult:
    """
    Verify the identity token, reconcile the user and issue a session token.

    Errors from verification (InvalidIdentityTokenError and friends) and from
    reconciliation (PersistenceError) propagate unchanged; no token is issued
    when either step fails.
    """
    verify = verifier or verify_google_id_token
    claims = verify(identity_token)
    user = IdentityReconciler(db).reconcile(claims)

    service = token_service or get_token_service()
    token = service.issue(user.id)

    logger.info("Login completed for user_id=%s", user.id)
    return AuthResult(
        token=token,
        user_id=user.id,
        email=user.email,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
    )
