"""Strava OAuth credentials linked one-to-one to a profile and to a Strava athlete."""

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from washedup.core.time_utils import utcnow
from washedup.db.base import Base


class StravaConnection(Base):
    __tablename__ = "strava_connections"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("profile.id", ondelete="CASCADE"), nullable=False, unique=True, index=True
    )
    strava_athlete_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    # Both tokens are Fernet-encrypted when ENCRYPTION_KEY is set (see services.token_vault)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    refresh_token: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    scope: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    profile: Mapped["Profile"] = relationship("Profile", back_populates="strava_connection")
