# backend/models/echo_score.py
from datetime import datetime
from sqlalchemy import Column, Integer, Float, DateTime, Date, ForeignKey, JSON, Index
from db.session import Base


class EchoScoreHistory(Base):
    """One row per "calculate and save" run. Append-only, ordered by score_date."""
    __tablename__ = "echo_score_history"
    __table_args__ = (
        Index("ix_echo_history_user_date", "user_id", "score_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    # Components (0–100 each)
    diversity_score = Column(Float, nullable=False)
    accuracy_score = Column(Float, nullable=False)
    switch_speed_score = Column(Float, nullable=False)
    consistency_score = Column(Float, nullable=False)
    improvement_score = Column(Float, nullable=False)

    # Weighted total (0–100)
    total_score = Column(Float, nullable=False)
    calculation_details = Column(JSON, nullable=True)

    score_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
