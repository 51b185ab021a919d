from __future__ import annotations

import asyncio
import logging
from typing import Callable

from fastapi import FastAPI, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wine_api.auth.identity import (
    REASON_EXPIRED_TOKEN,
    REASON_INVALID_SIGNATURE,
    REASON_LOOKUP_FAILED,
    REASON_MALFORMED_TOKEN,
    REASON_MISSING_TOKEN,
    REASON_USER_NOT_FOUND,
    Identity,
)
from wine_api.core import database
from wine_api.core.security import (
    ExpiredTokenError,
    InvalidSignatureError,
    MalformedTokenError,
    TokenService,
    get_token_service,
)
from wine_api.services.users import get_user_by_id

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from ``Authorization: Bearer <token>``, or None if the header has another shape."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token or " " in token:
        return None
    return token


class RequestAuthenticator:
    """
    Resolves the caller of a single request from its Authorization header.

    Never raises for bad or missing credentials: the outcome is always an
    Identity, authenticated or not. Whether an unauthenticated caller may
    use an endpoint is decided later by the route's dependencies.
    """

    def __init__(self, token_service: TokenService):
        self.token_service = token_service

    def authenticate(self, authorization: str | None, db: Session) -> Identity:
        token = extract_bearer_token(authorization)
        if token is None:
            logger.debug("No bearer token on request")
            return Identity.unauthenticated(REASON_MISSING_TOKEN)

        try:
            user_id = self.token_service.validate(token)
        except ExpiredTokenError:
            logger.info("Session token expired")
            return Identity.unauthenticated(REASON_EXPIRED_TOKEN)
        except InvalidSignatureError as exc:
            logger.warning("Rejected session token with invalid signature: %s", exc)
            return Identity.unauthenticated(REASON_INVALID_SIGNATURE)
        except MalformedTokenError as exc:
            logger.warning("Rejected malformed session token: %s", exc)
            return Identity.unauthenticated(REASON_MALFORMED_TOKEN)

        user = get_user_by_id(db, user_id)
        if user is None:
            logger.warning("Session token references missing user_id=%s", user_id)
            return Identity.unauthenticated(REASON_USER_NOT_FOUND)

        return Identity.authenticated(user.id, email=user.email)


def _authenticate_with_session(authenticator: RequestAuthenticator, authorization: str | None) -> Identity:
    db = database.SessionLocal()
    try:
        return authenticator.authenticate(authorization, db)
    except SQLAlchemyError as exc:
        logger.error("User lookup failed during request authentication: %s", exc)
        return Identity.unauthenticated(REASON_LOOKUP_FAILED)
    finally:
        db.close()


def register_identity_middleware(
    app: FastAPI,
    *,
    token_service_factory: Callable[[], TokenService] = get_token_service,
) -> None:
    @app.middleware("http")
    async def identity_middleware(request: Request, call_next):
        """
        Attach the caller's Identity to request.state.identity.

        The request always continues to the next handler; routes that need a
        user enforce it through wine_api.dependencies.auth.
        """
        existing = getattr(request.state, "identity", None)
        if isinstance(existing, Identity) and existing.is_authenticated:
            return await call_next(request)

        authorization = request.headers.get("Authorization")
        if extract_bearer_token(authorization) is None:
            request.state.identity = Identity.unauthenticated(REASON_MISSING_TOKEN)
            return await call_next(request)

        authenticator = RequestAuthenticator(token_service_factory())

        # The user lookup is blocking database I/O; keep it off the event loop.
        request.state.identity = await asyncio.to_thread(_authenticate_with_session, authenticator, authorization)

        return await call_next(request)
