# wine_api/core/security.py
"""
Session token issuance and validation.

Session tokens are HS256 JWTs carrying only ``sub`` (internal user id),
``iat`` and ``exp``. Nothing is stored server-side: a token stays valid until
it expires.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from jose import JWTError, jwt
from jose.exceptions import JWTClaimsError

from wine_api.core.config import ALLOWED_JWT_ALGORITHMS, MIN_JWT_SECRET_BYTES, settings


logger = logging.getLogger(__name__)


# -------------------------
# Errors
# -------------------------
class SessionTokenError(Exception):
    """Base class for session token validation failures."""


class ExpiredTokenError(SessionTokenError):
    pass


class InvalidSignatureError(SessionTokenError):
    pass


class MalformedTokenError(SessionTokenError):
    pass


# -------------------------
# Claims codec
# -------------------------
@dataclass(frozen=True)
class ClaimsPayload:
    subject: str
    issued_at: int
    expires_at: int

    def to_claims(self) -> dict[str, Any]:
        return {"sub": self.subject, "iat": self.issued_at, "exp": self.expires_at}


def encode_claims(payload: ClaimsPayload, secret: str, algorithm: str) -> str:
    return jwt.encode(payload.to_claims(), secret, algorithm=algorithm)


def _int_claim(claims: dict[str, Any], name: str) -> int:
    value = claims.get(name)
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedTokenError(f"Token claim '{name}' must be an integer")
    return value


def decode_claims(token: str, secret: str, algorithm: str) -> ClaimsPayload:
    """
    Verify the signature and return the payload. Expiry is NOT checked here;
    callers compare ``expires_at`` against their own clock.
    """
    if not token or not isinstance(token, str):
        raise MalformedTokenError("Token is empty")

    # Parse first so structural problems are reported separately from bad signatures.
    try:
        jwt.get_unverified_header(token)
        jwt.get_unverified_claims(token)
    except JWTError as e:
        raise MalformedTokenError(f"Token could not be parsed: {e}") from e

    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            options={"verify_exp": False, "verify_aud": False},
        )
    except JWTClaimsError as e:
        raise MalformedTokenError(f"Token claims invalid: {e}") from e
    except JWTError as e:
        raise InvalidSignatureError(f"Signature verification failed: {e}") from e

    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject.strip():
        raise MalformedTokenError("Token missing 'sub' claim")

    return ClaimsPayload(
        subject=subject,
        issued_at=_int_claim(claims, "iat"),
        expires_at=_int_claim(claims, "exp"),
    )


# -------------------------
# Token service
# -------------------------
def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """
    Issues and validates session tokens. ``clock`` is the single time source
    for both issuance and expiry checks.
    """

    def __init__(
        self,
        secret: str,
        ttl: timedelta,
        *,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = _now_utc,
    ) -> None:
        if not secret or len(secret.encode("utf-8")) < MIN_JWT_SECRET_BYTES:
            raise RuntimeError(f"JWT secret must be at least {MIN_JWT_SECRET_BYTES} bytes (256 bits)")
        if algorithm not in ALLOWED_JWT_ALGORITHMS:
            raise RuntimeError(f"Unsupported JWT algorithm: {algorithm}")
        if ttl <= timedelta(0):
            raise RuntimeError("Token TTL must be positive")

        self._secret = secret
        self._algorithm = algorithm
        self._clock = clock
        self.ttl = ttl

    def issue(self, user_id: str) -> str:
        """Access token used for API auth: Authorization: Bearer <token>"""
        if not user_id:
            raise ValueError("user_id is required")

        now = self._clock().timestamp()
        # exp rounds up so a token never lives shorter than ttl.
        payload = ClaimsPayload(
            subject=str(user_id),
            issued_at=int(now),
            expires_at=math.ceil(now + self.ttl.total_seconds()),
        )
        logger.debug("Issuing session token for user_id=%s exp=%s", payload.subject, payload.expires_at)
        return encode_claims(payload, self._secret, self._algorithm)

    def validate(self, token: str) -> str:
        """
        Return the user id the token was issued for.

        Raises:
            MalformedTokenError: token cannot be parsed or lacks required claims
            InvalidSignatureError: signature does not verify against the secret
            ExpiredTokenError: the service clock is past ``exp``
        """
        payload = decode_claims(token, self._secret, self._algorithm)

        now = self._clock().timestamp()
        if now > payload.expires_at:
            raise ExpiredTokenError(f"Token expired at {payload.expires_at}")

        return payload.subject


_token_service: TokenService | None = None


def get_token_service() -> TokenService:
    """Build the process-wide token service from settings on first use."""
    global _token_service
    if _token_service is None:
        _token_service = TokenService(
            settings.JWT_SECRET,
            timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            algorithm=settings.JWT_ALGORITHM,
        )
    return _token_service


def reset_token_service() -> None:
    """Drop the cached token service so the next call rereads settings."""
    global _token_service
    _token_service = None
