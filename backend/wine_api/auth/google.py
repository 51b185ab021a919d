# wine_api/auth/google.py
"""
Google ID token verification.

Used by the login flow to turn a Google-issued ID token into a normalized
claim set. Responsibilities:
- Lazy JWKS fetching (no network calls on import)
- In-memory JWKS caching with configurable TTL, one forced refresh on unknown kid
- Signature, expiry, issuer and audience checks
- Clear typed exceptions for verification failures
"""
from __future__ import annotations

import json
import logging
import ssl
import threading
import time
from dataclasses import dataclass
from typing import Any
from urllib.request import urlopen

import certifi

from jose import JWTError, jwk, jwt

from wine_api.core.config import GOOGLE_ISSUERS, mask_secret, settings


logger = logging.getLogger(__name__)

# Unknown kids trigger at most one JWKS refetch per window.
UNKNOWN_KID_REFRESH_SECONDS = 60


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class InvalidIdentityTokenError(Exception):
    """The identity token failed verification or lacks required claims."""

    pass


class IdentityTokenExpiredError(InvalidIdentityTokenError):
    pass


class IdentitySignatureError(InvalidIdentityTokenError):
    pass


class IdentityIssuerMismatchError(InvalidIdentityTokenError):
    pass


class IdentityAudienceMismatchError(InvalidIdentityTokenError):
    pass


class IdentityProviderUnavailableError(Exception):
    """Google's signing keys could not be fetched."""

    pass


class IdentityProviderNotConfiguredError(Exception):
    """GOOGLE_CLIENT_ID (or the JWKS URL) is not configured."""

    pass


# ---------------------------------------------------------------------------
# Claims
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GoogleIdentityClaims:
    """Normalized claims from a verified Google ID token."""

    subject: str
    email: str
    display_name: str
    avatar_url: str | None = None


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def normalize_claims(claims: dict[str, Any]) -> GoogleIdentityClaims:
    """
    Extract subject, email, name and picture from verified token claims.

    Raises InvalidIdentityTokenError when subject, email or name is missing;
    account creation needs all three.
    """
    subject = _clean(claims.get("sub"))
    if not subject:
        raise InvalidIdentityTokenError("Token missing 'sub' claim")

    email = _clean(claims.get("email"))
    if not email:
        raise InvalidIdentityTokenError("Token missing 'email' claim")

    display_name = _clean(claims.get("name"))
    if not display_name:
        raise InvalidIdentityTokenError("Token missing 'name' claim")

    return GoogleIdentityClaims(
        subject=subject,
        email=email.lower(),
        display_name=display_name,
        avatar_url=_clean(claims.get("picture")),
    )


# ---------------------------------------------------------------------------
# JWKS Cache
# ---------------------------------------------------------------------------


class _JWKSCache:
    """
    Thread-safe in-memory cache for Google's signing keys.

    The cache is populated lazily on first verification attempt.
    TTL is controlled by GOOGLE_JWKS_CACHE_SECONDS.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: dict[str, Any] | None = None
        self._fetched_at: float = 0.0
        self._forced_refresh_at: float = 0.0

    def get_signing_key(self, kid: str) -> Any:
        """
        Get the signing key for the given key ID.

        Raises IdentityProviderUnavailableError if the fetch fails.
        Raises IdentitySignatureError if kid is still unknown (refetch is rate-limited).
        """
        with self._lock:
            now = time.time()
            ttl = settings.GOOGLE_JWKS_CACHE_SECONDS

            if self._keys is None or (now - self._fetched_at) > ttl:
                self._refresh_keys()

            if kid not in self._keys and (now - self._forced_refresh_at) >= UNKNOWN_KID_REFRESH_SECONDS:
                # Google rotates keys; the token may be signed by a newer one.
                self._forced_refresh_at = now
                self._refresh_keys()

            if kid not in self._keys:
                raise IdentitySignatureError(f"Signing key not found for kid: {kid}")

            return self._keys[kid]

    def _refresh_keys(self) -> None:
        jwks_url = settings.GOOGLE_JWKS_URL
        if not jwks_url:
            raise IdentityProviderNotConfiguredError("Google JWKS URL not configured")

        try:
            logger.info("Fetching Google JWKS from %s", jwks_url)
            context = ssl.create_default_context(cafile=certifi.where())
            with urlopen(jwks_url, timeout=10, context=context) as resp:
                data = json.loads(resp.read().decode("utf-8"))
        except Exception as e:
            logger.error("Failed to fetch Google JWKS: %s", e)
            raise IdentityProviderUnavailableError(f"Failed to fetch JWKS: {e}") from e

        keys_list = data.get("keys", []) if isinstance(data, dict) else []
        if not keys_list:
            raise IdentityProviderUnavailableError("JWKS response contains no keys")

        keys: dict[str, Any] = {}
        for key_data in keys_list:
            kid = key_data.get("kid")
            if kid:
                try:
                    keys[kid] = jwk.construct(key_data, algorithm=key_data.get("alg", "RS256"))
                except Exception as e:
                    logger.warning("Failed to construct key for kid=%s: %s", kid, e)

        self._keys = keys
        self._fetched_at = time.time()
        logger.info("Cached %d Google signing keys", len(self._keys))

    def clear(self) -> None:
        with self._lock:
            self._keys = None
            self._fetched_at = 0.0
            self._forced_refresh_at = 0.0


_jwks_cache = _JWKSCache()


def clear_jwks_cache() -> None:
    """Clear the JWKS cache. Exposed for testing."""
    _jwks_cache.clear()


# ---------------------------------------------------------------------------
# Token Verification
# ---------------------------------------------------------------------------


def _audience_matches(aud: Any, client_id: str) -> bool:
    if isinstance(aud, str):
        return aud == client_id
    if isinstance(aud, (list, tuple)):
        return client_id in aud
    return False


def verify_google_id_token(token: str) -> GoogleIdentityClaims:
    """
    Verify a Google ID token and return its normalized claims.

    Validates:
    - Signature via Google's JWKS
    - exp / iat / nbf claims
    - Issuer is Google
    - Audience matches GOOGLE_CLIENT_ID

    Raises:
        IdentityProviderNotConfiguredError: GOOGLE_CLIENT_ID not configured
        IdentityProviderUnavailableError: signing keys could not be fetched
        IdentityTokenExpiredError: token has expired
        IdentitySignatureError: signature verification failed
        IdentityIssuerMismatchError: issuer is not Google
        IdentityAudienceMismatchError: audience is not this app
        InvalidIdentityTokenError: malformed token or missing claims
    """
    client_id = settings.GOOGLE_CLIENT_ID
    if not client_id:
        raise IdentityProviderNotConfiguredError("GOOGLE_CLIENT_ID must be set")

    if not token or not isinstance(token, str):
        raise InvalidIdentityTokenError("Identity token is empty")

    try:
        unverified_header = jwt.get_unverified_header(token)
    except JWTError as e:
        raise InvalidIdentityTokenError(f"Invalid token header: {e}") from e

    kid = unverified_header.get("kid")
    if not kid:
        raise InvalidIdentityTokenError("Token header missing 'kid'")
    if not isinstance(kid, str):
        raise InvalidIdentityTokenError("Token header 'kid' must be a string")

    signing_key = _jwks_cache.get_signing_key(kid)

    try:
        claims = jwt.decode(
            token,
            signing_key,
            algorithms=["RS256"],
            issuer=list(GOOGLE_ISSUERS),
            # Audience is checked below; python-jose accepts tokens without `aud`.
            options={"verify_aud": False, "verify_at_hash": False},
        )
    except jwt.ExpiredSignatureError as e:
        raise IdentityTokenExpiredError("Token has expired") from e
    except jwt.JWTClaimsError as e:
        if "issuer" in str(e).lower():
            raise IdentityIssuerMismatchError(f"Issuer mismatch: {e}") from e
        raise InvalidIdentityTokenError(f"Claims validation failed: {e}") from e
    except JWTError as e:
        raise IdentitySignatureError(f"Signature verification failed: {e}") from e

    token_issuer = claims.get("iss", "")
    if token_issuer not in GOOGLE_ISSUERS:
        raise IdentityIssuerMismatchError(f"Unexpected issuer {token_issuer}")

    if not _audience_matches(claims.get("aud"), client_id):
        raise IdentityAudienceMismatchError(
            f"Expected aud {mask_secret(client_id)}, got {claims.get('aud')}"
        )

    result = normalize_claims(claims)
    logger.info("Google ID token verified for google_id=%s", result.subject)
    return result
