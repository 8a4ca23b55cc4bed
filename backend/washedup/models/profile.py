from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from washedup.core.time_utils import utcnow
from washedup.db.base import Base


class ProfileRole(str, enum.Enum):
    admin = "admin"
    user = "user"


class Profile(Base):
    __tablename__ = "profile"

    id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    firstname: Mapped[str] = mapped_column(Text, nullable=False)
    lastname: Mapped[str] = mapped_column(Text, nullable=False)
    username: Mapped[str] = mapped_column(Text, nullable=False)
    strava_athlete_id: Mapped[int | None] = mapped_column(BigInteger, unique=True, nullable=True, index=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=ProfileRole.user.value)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user: Mapped["User"] = relationship("User", back_populates="profile")
    strava_connection: Mapped["StravaConnection | None"] = relationship(
        "StravaConnection", back_populates="profile", uselist=False, cascade="all, delete-orphan", passive_deletes=True
    )
    participations: Mapped[list["ChallengeParticipant"]] = relationship(
        "ChallengeParticipant", back_populates="profile", cascade="all, delete-orphan", passive_deletes=True
    )

    @property
    def is_admin(self) -> bool:
        return self.role == ProfileRole.admin.value
