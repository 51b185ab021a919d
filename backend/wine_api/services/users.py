# wine_api/services/users.py
"""
User persistence helpers.

Responsibilities:
- Read-only user lookups (by id, google_id, email)
- Reconciling verified Google claims onto a local user (find, create, or update drift)
- Mapping storage failures to PersistenceError
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from wine_api.auth.google import GoogleIdentityClaims
from wine_api.models.user import User

logger = logging.getLogger(__name__)


class PersistenceError(Exception):
    """Storage was unavailable or rejected a write for reasons other than a login race."""

    pass


def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
    """Look up a user by internal id."""
    if not user_id:
        return None
    return db.get(User, user_id)


def get_user_by_google_id(db: Session, google_id: str, *, for_update: bool = False) -> Optional[User]:
    """Look up a user by their Google subject identifier."""
    query = db.query(User).filter(User.google_id == google_id)
    if for_update:
        query = query.with_for_update()
    return query.first()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    """Look up a user by email address."""
    return db.query(User).filter(User.email == email.strip().lower()).first()


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class IdentityReconciler:
    """
    Maps verified Google claims onto exactly one local user.

    Each call runs one transaction: look up by google_id, then either create
    the user or write only the profile fields that drifted. Re-running with
    identical claims performs no write.
    """

    def __init__(self, db: Session, *, clock: Callable[[], datetime] = _now_utc):
        self.db = db
        self._clock = clock

    def reconcile(self, claims: GoogleIdentityClaims) -> User:
        try:
            user = get_user_by_google_id(self.db, claims.subject, for_update=True)
            if user is not None:
                return self._apply_drift(user, claims)
            return self._create(claims)
        except PersistenceError:
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Reconciliation failed for google_id=%s", claims.subject)
            raise PersistenceError(f"Could not reconcile user: {exc}") from exc

    def _create(self, claims: GoogleIdentityClaims) -> User:
        now = self._clock()
        user = User(
            google_id=claims.subject,
            email=claims.email,
            display_name=claims.display_name,
            avatar_url=claims.avatar_url,
            created_at=now,
            updated_at=now,
        )

        try:
            self.db.add(user)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            # Another request may have created this identity first.
            existing = get_user_by_google_id(self.db, claims.subject, for_update=True)
            if existing is None:
                logger.error(
                    "Cannot create user for google_id=%s email=%s: %s",
                    claims.subject,
                    claims.email,
                    exc.orig if exc.orig is not None else exc,
                )
                raise PersistenceError("User could not be created (constraint violation)") from exc
            logger.info("Concurrent first login for google_id=%s; using user %s", claims.subject, existing.id)
            return self._apply_drift(existing, claims)

        self.db.refresh(user)
        logger.info(
            "Created new user: id=%s, google_id=%s, email=%s",
            user.id,
            claims.subject,
            claims.email,
        )
        return user

    def _apply_drift(self, user: User, claims: GoogleIdentityClaims) -> User:
        changed: list[str] = []

        if user.display_name != claims.display_name:
            user.display_name = claims.display_name
            changed.append("display_name")

        if user.email != claims.email:
            user.email = claims.email
            changed.append("email")

        # A missing picture claim does not clear the stored avatar.
        if claims.avatar_url is not None and user.avatar_url != claims.avatar_url:
            user.avatar_url = claims.avatar_url
            changed.append("avatar_url")

        if not changed:
            # End the read transaction (releases the row lock) without writing.
            self.db.rollback()
            logger.debug("No profile changes for user %s", user.id)
            return user

        user.updated_at = self._clock()
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.error("Profile update rejected for user %s (%s): %s", user.id, ", ".join(changed), exc.orig)
            raise PersistenceError("User profile could not be updated (constraint violation)") from exc

        self.db.refresh(user)
        logger.info("Updated user %s fields: %s", user.id, ", ".join(changed))
        return user


def create_legacy_user(db: Session, *, email: str, display_name: str) -> User:
    """
    Insert a user with no google_id (development seed data for the email login).
    """
    if not email:
        raise ValueError("email is required")
    if not display_name or not display_name.strip():
        raise ValueError("display_name is required")

    now = _now_utc()
    user = User(
        email=email.strip().lower(),
        display_name=display_name.strip(),
        google_id=None,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created legacy user: id=%s, email=%s", user.id, user.email)
    return user
