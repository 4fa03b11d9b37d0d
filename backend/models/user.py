# backend/models/user.py
from datetime import datetime
from sqlalchemy import Column, String, Integer, Float, DateTime, Date, ForeignKey, JSON
from sqlalchemy.orm import relationship
from db.session import Base
from db.types import FlexibleBoolean


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    avatar_url = Column(String(500), nullable=True)

    # {"political_lean": -3..3, "preferred_sources": [...], "blind_spots": [...]}
    bias_profile = Column(JSON, nullable=True)

    # Denormalised copies, written by the submission pipeline / scoring engine
    echo_score = Column(Float, nullable=False, default=0.0)
    current_streak = Column(Integer, nullable=False, default=0)
    total_xp = Column(Integer, nullable=False, default=0)
    last_activity_date = Column(Date, nullable=True)

    # Accounts are soft-deactivated, never deleted
    is_active = Column(FlexibleBoolean, nullable=False, default=True)
    email_verified = Column(FlexibleBoolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    challenge_stats = relationship("UserChallengeStats", back_populates="user", uselist=False)


class UserChallengeStats(Base):
    """Per-user aggregates maintained alongside every submission."""
    __tablename__ = "user_challenge_stats"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)

    total_completed = Column(Integer, nullable=False, default=0)
    total_correct = Column(Integer, nullable=False, default=0)
    total_xp_earned = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_streak_date = Column(Date, nullable=True)      # last day with a correct submission

    # {"logic_puzzle": {"completed": 4, "correct": 3, "xp": 120, "time_spent": 610}, ...}
    type_performance = Column(JSON, nullable=False, default=dict)
    # Same entries keyed by difficulty level: {"1": {...}, "2": {...}}
    difficulty_performance = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="challenge_stats")
