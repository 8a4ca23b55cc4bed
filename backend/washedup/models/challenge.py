"""Challenges, their participants and the activities counted toward each result."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from washedup.core.time_utils import utcnow
from washedup.db.base import Base


class ChallengeType(str, enum.Enum):
    best_effort = "best_effort"  # fastest single activity over goal_value meters
    segment_race = "segment_race"  # fastest time on segment_id
    cumulative = "cumulative"  # total distance across activities, goal_value meters


class ChallengeStatus(str, enum.Enum):
    upcoming = "upcoming"
    active = "active"
    completed = "completed"


class ParticipantStatus(str, enum.Enum):
    registered = "registered"
    in_progress = "in_progress"
    completed = "completed"
    did_not_finish = "did_not_finish"


class Challenge(Base):
    __tablename__ = "challenges"
    __table_args__ = (CheckConstraint("end_date > start_date", name="ck_challenges_end_after_start"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    goal_value: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    segment_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=ChallengeStatus.upcoming.value)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    participants: Mapped[list["ChallengeParticipant"]] = relationship(
        "ChallengeParticipant", back_populates="challenge", cascade="all, delete-orphan", passive_deletes=True
    )


class ChallengeParticipant(Base):
    __tablename__ = "challenge_participants"
    __table_args__ = (
        UniqueConstraint("challenge_id", "profile_id", name="uq_challenge_participants_challenge_profile"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    challenge_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("challenges.id", ondelete="CASCADE"), nullable=False, index=True
    )
    profile_id: Mapped[int] = mapped_column(ForeignKey("profile.id", ondelete="CASCADE"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=ParticipantStatus.registered.value)
    result_value: Mapped[float | None] = mapped_column(Float, nullable=True)
    result_display: Mapped[str | None] = mapped_column(Text, nullable=True)
    highlight_activity_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    challenge: Mapped["Challenge"] = relationship("Challenge", back_populates="participants")
    profile: Mapped["Profile"] = relationship("Profile", back_populates="participations")
    contributions: Mapped[list["ChallengeContribution"]] = relationship(
        "ChallengeContribution",
        back_populates="participant",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChallengeContribution.created_at",
    )


class ChallengeContribution(Base):
    __tablename__ = "challenge_contributions"
    __table_args__ = (
        UniqueConstraint(
            "participant_id", "external_activity_id", name="uq_challenge_contributions_participant_activity"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    participant_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("challenge_participants.id", ondelete="CASCADE"), nullable=False, index=True
    )
    external_activity_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    activity_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    participant: Mapped["ChallengeParticipant"] = relationship("ChallengeParticipant", back_populates="contributions")
