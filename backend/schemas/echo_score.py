# backend/schemas/echo_score.py
from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from schemas.base import CamelModel


class CalculationDetails(CamelModel):
    articles_read: int = 0
    perspectives_explored: int = 0
    challenges_completed: int = 0
    accurate_answers: int = 0
    total_answers: int = 0
    average_time_spent: float = 0.0
    active_days: int = 0
    window_days: int = 0


class EchoScoreOut(CamelModel):
    id: Optional[int] = None
    total_score: float
    diversity_score: float
    accuracy_score: float
    switch_speed_score: float
    consistency_score: float
    improvement_score: float
    calculation_details: Optional[CalculationDetails] = None
    score_date: date
    created_at: Optional[datetime] = None


class ProgressPoint(CamelModel):
    score_date: date
    total: float
    diversity: float
    accuracy: float
    switch_speed: float
    consistency: float
    improvement: float


class EchoScoreProgressOut(CamelModel):
    period: Literal["daily", "weekly"]
    days: int
    scores: List[ProgressPoint]
    trends: Dict[str, float]
