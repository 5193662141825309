from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from sweepstakes.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Participant(Base):
    __tablename__ = "participants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    role: Mapped[str] = mapped_column(String(16), default="user", nullable=False)  # admin / user
    paid: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    predictions: Mapped[list["Prediction"]] = relationship(
        "Prediction", back_populates="participant", cascade="all, delete-orphan"
    )
    extras: Mapped[ExtraPrediction | None] = relationship(
        "ExtraPrediction", back_populates="participant", cascade="all, delete-orphan", uselist=False
    )


class Match(Base):
    __tablename__ = "matches"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    team_a: Mapped[str] = mapped_column(String(64), nullable=False)
    team_b: Mapped[str] = mapped_column(String(64), nullable=False)
    group_name: Mapped[str] = mapped_column(String(64), nullable=False, index=True)  # "Grupo A", "FINAL", ...
    kickoff: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    venue: Mapped[str | None] = mapped_column(String(128), nullable=True)
    is_marquee: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    official_score_a: Mapped[int | None] = mapped_column(Integer, nullable=True)
    official_score_b: Mapped[int | None] = mapped_column(Integer, nullable=True)

    predictions: Mapped[list["Prediction"]] = relationship(
        "Prediction", back_populates="match", cascade="all, delete-orphan"
    )


class Prediction(Base):
    __tablename__ = "predictions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    participant_id: Mapped[int] = mapped_column(ForeignKey("participants.id"), nullable=False, index=True)
    match_id: Mapped[str] = mapped_column(ForeignKey("matches.id"), nullable=False, index=True)
    # Either side may be missing while the participant is still filling in the sheet.
    score_a: Mapped[int | None] = mapped_column(Integer, nullable=True)
    score_b: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    participant: Mapped[Participant] = relationship("Participant", back_populates="predictions")
    match: Mapped[Match] = relationship("Match", back_populates="predictions")

    __table_args__ = (UniqueConstraint("participant_id", "match_id", name="uq_prediction_per_match"),)


class ExtraPrediction(Base):
    """Tournament-long picks. Stored and shown, never scored."""

    __tablename__ = "extra_predictions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    participant_id: Mapped[int] = mapped_column(
        ForeignKey("participants.id"), unique=True, nullable=False
    )
    marquee_first_scorer_1: Mapped[str | None] = mapped_column(String(64), nullable=True)
    marquee_first_scorer_2: Mapped[str | None] = mapped_column(String(64), nullable=True)
    marquee_first_scorer_3: Mapped[str | None] = mapped_column(String(64), nullable=True)
    top_scorer: Mapped[str | None] = mapped_column(String(64), nullable=True)
    champion: Mapped[str | None] = mapped_column(String(64), nullable=True)
    vice_champion: Mapped[str | None] = mapped_column(String(64), nullable=True)
    third_place: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    participant: Mapped[Participant] = relationship("Participant", back_populates="extras")


class ScoringRuleRow(Base):
    __tablename__ = "scoring_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[str] = mapped_column(String(128), nullable=False)
    category: Mapped[str | None] = mapped_column(String(32), nullable=True)  # None for informational rows
    points: Mapped[int] = mapped_column(Integer, nullable=False)


class PoolSettings(Base):
    __tablename__ = "pool_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    ticket_price: Mapped[float] = mapped_column(Float, nullable=False)
    prize_first: Mapped[float] = mapped_column(Float, nullable=False)
    prize_second: Mapped[float] = mapped_column(Float, nullable=False)
    prize_third: Mapped[float] = mapped_column(Float, nullable=False)
    special_teams: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    special_phases: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    marquee_team: Mapped[str | None] = mapped_column(String(64), nullable=True)
    third_place_slots: Mapped[int] = mapped_column(Integer, nullable=False)
