# backend/models/challenge.py
"""
ORM models for the challenge catalogue, submissions and daily selections.
"""
import enum
from datetime import datetime
from sqlalchemy import (
    Column, String, Integer, DateTime, Date, Text, ForeignKey, JSON,
    CheckConstraint, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship
from db.session import Base
from db.types import FlexibleBoolean


class ChallengeType(str, enum.Enum):
    BIAS_SWAP = "bias_swap"
    LOGIC_PUZZLE = "logic_puzzle"
    SYNTHESIS = "synthesis"
    DATA_LITERACY = "data_literacy"
    ETHICAL_DILEMMA = "ethical_dilemma"
    COUNTER_ARGUMENT = "counter_argument"
    FALLACY_DETECTION = "fallacy_detection"

    @classmethod
    def parse(cls, value: str) -> "ChallengeType":
        # Older clients call ethical dilemmas "moral_reasoning"
        if value == "moral_reasoning":
            return cls.ETHICAL_DILEMMA
        return cls(value)


class DifficultyLevel(enum.IntEnum):
    BEGINNER = 1
    INTERMEDIATE = 2
    ADVANCED = 3
    EXPERT = 4


class Challenge(Base):
    """Immutable catalogue entry, created by content tooling."""
    __tablename__ = "challenges"
    __table_args__ = (
        CheckConstraint("difficulty BETWEEN 1 AND 4", name="ck_challenges_difficulty"),
    )

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String(40), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    prompt = Column(Text, nullable=False)
    content = Column(JSON, nullable=False)              # tagged union, see schemas.challenge
    correct_answer = Column(JSON, nullable=True)        # never sent to clients
    explanation = Column(Text, nullable=True)
    difficulty = Column(Integer, nullable=False, default=DifficultyLevel.BEGINNER)
    estimated_time_minutes = Column(Integer, nullable=False, default=5)
    xp_reward = Column(Integer, nullable=False, default=10)
    allow_retries = Column(FlexibleBoolean, nullable=False, default=True)
    is_active = Column(FlexibleBoolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    submissions = relationship("ChallengeSubmission", back_populates="challenge")


class ChallengeSubmission(Base):
    """
    One row per answer attempt (the "user response").
    Append-only: retries add rows with a higher `attempts` count.
    """
    __tablename__ = "challenge_submissions"
    __table_args__ = (
        CheckConstraint("time_spent_seconds >= 0", name="ck_submissions_time_spent"),
        CheckConstraint("attempts >= 1", name="ck_submissions_attempts"),
        Index("ix_submissions_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    challenge_id = Column(Integer, ForeignKey("challenges.id"), nullable=False)

    user_answer = Column(JSON, nullable=True)
    is_correct = Column(FlexibleBoolean, nullable=False, default=False)
    time_spent_seconds = Column(Integer, nullable=False, default=0)
    attempts = Column(Integer, nullable=False, default=1)
    xp_earned = Column(Integer, nullable=False, default=0)
    feedback = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User")
    challenge = relationship("Challenge", back_populates="submissions")


class DailyChallengeSelection(Base):
    """
    Audit row: which challenge the adaptive engine picked for a user on a day
    and why. One row per (user, date); recomputing the same day overwrites it.
    """
    __tablename__ = "daily_challenge_selections"
    __table_args__ = (
        UniqueConstraint("user_id", "selection_date", name="uq_selection_user_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    challenge_id = Column(Integer, ForeignKey("challenges.id"), nullable=False)
    selection_date = Column(Date, nullable=False, index=True)
    selection_reasons = Column(JSON, nullable=False, default=list)
    difficulty_adjustment = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    challenge = relationship("Challenge")
