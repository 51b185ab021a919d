import uuid

from sqlalchemy import Column, DateTime, String, Text

from wine_api.core.base import Base


def _new_user_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "app_user"

    # Assigned once at creation, never reused.
    id = Column(String(36), primary_key=True, default=_new_user_id)

    display_name = Column(String(120), nullable=False)
    email = Column(String(180), unique=True, index=True, nullable=False)
    avatar_url = Column(Text, nullable=True)
    # NULL only for legacy accounts that never signed in with Google.
    google_id = Column(String(255), unique=True, index=True, nullable=True)

    # Set explicitly by the reconciler so updated_at means "last real change".
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
