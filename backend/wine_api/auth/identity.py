# wine_api/auth/identity.py
"""
Request principal.

The identity middleware produces exactly one Identity per request and stores
it on ``request.state.identity``. It is either authenticated (carries the
internal user id) or unauthenticated (carries the reason authentication did
not happen). Downstream code never inspects raw tokens.

The Identity object is INTERNAL ONLY and should not be returned directly
to clients.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Reasons an Identity can be unauthenticated.
REASON_MISSING_TOKEN = "missing_token"
REASON_EXPIRED_TOKEN = "expired_token"
REASON_INVALID_SIGNATURE = "invalid_signature"
REASON_MALFORMED_TOKEN = "malformed_token"
REASON_USER_NOT_FOUND = "user_not_found"
REASON_LOOKUP_FAILED = "lookup_failed"


@dataclass(frozen=True)
class Identity:
    """
    Canonical representation of an authenticated (or unauthenticated) caller.

    Attributes:
        user_id: Internal user id taken from a validated session token.
        email: The user's email as currently stored.
        is_authenticated: True only when the token validated and the user exists.
        reason: Why the request is unauthenticated; ``None`` when authenticated.
    """

    user_id: str | None = None
    email: str | None = None
    is_authenticated: bool = False
    reason: str | None = REASON_MISSING_TOKEN

    @classmethod
    def unauthenticated(cls, reason: str = REASON_MISSING_TOKEN) -> Identity:
        return cls(user_id=None, email=None, is_authenticated=False, reason=reason)

    @classmethod
    def authenticated(cls, user_id: str, email: str | None = None) -> Identity:
        if not user_id:
            raise ValueError("user_id is required for an authenticated identity")
        return cls(
            user_id=str(user_id),
            email=email.strip().lower() if email else None,
            is_authenticated=True,
            reason=None,
        )

    def to_debug_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "is_authenticated": self.is_authenticated,
            "reason": self.reason,
        }
