# backend/services/echo_score_service.py
"""
Echo Score engine.

Five components, each normalised to 0–100:
  diversity     – share of the 7 bias buckets (-3 … +3) the user has read from
  accuracy      – correct / total challenge submissions
  switch_speed  – how quickly the user alternates between left- and right-leaning reads
  consistency   – active days / days in the window
  improvement   – recent half of the window vs the earlier half (50 = flat)

The total is a fixed-weight blend of the components. The component functions
are pure so they can be checked without a database.
"""
import logging
import math
import statistics
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ValidationError
from models.challenge import ChallengeSubmission
from models.content import NewsArticle, ReadingActivity
from models.echo_score import EchoScoreHistory
from models.user import User

logger = logging.getLogger("echo_score")

WEIGHTS: Dict[str, float] = {
    "diversity": 0.25,
    "accuracy": 0.25,
    "switch_speed": 0.20,
    "consistency": 0.15,
    "improvement": 0.15,
}

BIAS_BUCKETS = 7                 # -3 … +3
SWITCH_FAST_HOURS = 1.0          # at or under this gap → 100
SWITCH_SLOW_HOURS = 72.0         # at or over this gap → 0
MAX_WINDOW_DAYS = 365
PROGRESS_PERIODS = ("daily", "weekly")


def validate_weights(weights: Dict[str, float]) -> Dict[str, float]:
    if set(weights) != set(WEIGHTS):
        raise ValueError(f"Echo Score weights must cover exactly {sorted(WEIGHTS)}")
    if any(w < 0 for w in weights.values()) or math.fsum(weights.values()) != 1.0:
        raise ValueError("Echo Score weights must be non-negative and sum to 1.0")
    return dict(weights)


validate_weights(WEIGHTS)


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


# ── Component formulas ────────────────────────────────────────────────────────

def diversity_score(bias_ratings: Sequence[int]) -> float:
    if not bias_ratings:
        return 0.0
    return _clamp(len(set(bias_ratings)) * 100 / BIAS_BUCKETS)


def accuracy_score(correct: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return _clamp(correct * 100 / total)


def switch_speed_score(reads: Sequence[Tuple[datetime, int]]) -> float:
    """
    reads: (read_at, bias_rating) pairs. A switch is a read whose lean is the
    opposite of the previous non-centre read; the score comes from the median
    gap between those two reads.
    """
    gaps = []
    last_lean, last_at = 0, None
    for read_at, bias in sorted(reads, key=lambda r: r[0]):
        lean = (bias > 0) - (bias < 0)
        if lean == 0:
            continue
        if last_lean and lean != last_lean:
            gaps.append((read_at - last_at).total_seconds() / 3600)
        last_lean, last_at = lean, read_at
    if not gaps:
        return 0.0
    gap = _clamp(statistics.median(gaps), SWITCH_FAST_HOURS, SWITCH_SLOW_HOURS)
    return _clamp((SWITCH_SLOW_HOURS - gap) / (SWITCH_SLOW_HOURS - SWITCH_FAST_HOURS) * 100)


def consistency_score(active_days: int, window_days: int) -> float:
    if active_days <= 0 or window_days <= 0:
        return 0.0
    return _clamp(active_days * 100 / window_days)


def improvement_score(outcomes: Sequence[bool], bias_ratings: Sequence[int]) -> float:
    """
    outcomes and bias_ratings are in chronological order. Each series is split
    into an earlier and a recent half; the mean change maps to 0–100 around 50.
    """
    if not outcomes and not bias_ratings:
        return 0.0

    deltas = []
    if len(outcomes) >= 2:
        mid = len(outcomes) // 2
        earlier, recent = outcomes[:mid], outcomes[mid:]
        deltas.append(sum(recent) / len(recent) - sum(earlier) / len(earlier))
    if len(bias_ratings) >= 2:
        mid = len(bias_ratings) // 2
        earlier, recent = bias_ratings[:mid], bias_ratings[mid:]
        deltas.append((len(set(recent)) - len(set(earlier))) / BIAS_BUCKETS)

    if not deltas:
        return 50.0
    return _clamp(50 + 50 * sum(deltas) / len(deltas))


def combine(components: Dict[str, float], weights: Dict[str, float] = WEIGHTS) -> float:
    total = math.fsum(components[name] * weight for name, weight in weights.items())
    return round(_clamp(total), 2)


# ── Results ───────────────────────────────────────────────────────────────────

@dataclass
class EchoScoreResult:
    diversity_score: float
    accuracy_score: float
    switch_speed_score: float
    consistency_score: float
    improvement_score: float
    total_score: float
    calculation_details: dict
    score_date: date
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: EchoScoreHistory) -> "EchoScoreResult":
        return cls(
            id=row.id,
            diversity_score=row.diversity_score,
            accuracy_score=row.accuracy_score,
            switch_speed_score=row.switch_speed_score,
            consistency_score=row.consistency_score,
            improvement_score=row.improvement_score,
            total_score=row.total_score,
            calculation_details=row.calculation_details or {},
            score_date=row.score_date,
            created_at=row.created_at,
        )


@dataclass
class ScoreProgress:
    period: str
    days: int
    scores: List[dict] = field(default_factory=list)
    trends: Dict[str, float] = field(default_factory=dict)


# ── Service ───────────────────────────────────────────────────────────────────

class EchoScoreService:
    def __init__(self, db: AsyncSession, weights: Optional[Dict[str, float]] = None):
        self.db = db
        self.weights = validate_weights(weights) if weights else WEIGHTS

    async def calculate(
        self, user_id: int, days: Optional[int] = None, now: Optional[datetime] = None
    ) -> EchoScoreResult:
        """Preview: compute the score for the window without writing anything."""
        now = now or datetime.utcnow()
        today = now.date()
        since = _window_start(today, days) if days is not None else None

        submissions = await self._submissions(user_id, since, now)
        reads = await self._reads(user_id, since, now)

        outcomes = [s.is_correct for s in submissions]
        ratings = [bias for _, bias in reads]
        correct = sum(outcomes)

        activity_days = {s.created_at.date() for s in submissions} | {at.date() for at, _ in reads}
        if days is not None:
            window_days = days
        elif activity_days:
            window_days = (today - min(activity_days)).days + 1
        else:
            window_days = 0

        components = {
            "diversity": diversity_score(ratings),
            "accuracy": accuracy_score(correct, len(outcomes)),
            "switch_speed": switch_speed_score(reads),
            "consistency": consistency_score(len(activity_days), window_days),
            "improvement": improvement_score(outcomes, ratings),
        }
        components = {name: round(value, 2) for name, value in components.items()}

        avg_time = (
            sum(s.time_spent_seconds for s in submissions) / len(submissions) if submissions else 0.0
        )
        details = {
            "articles_read": len(reads),
            "perspectives_explored": len(set(ratings)),
            "challenges_completed": len({s.challenge_id for s in submissions}),
            "accurate_answers": correct,
            "total_answers": len(outcomes),
            "average_time_spent": round(avg_time, 2),
            "active_days": len(activity_days),
            "window_days": window_days,
        }

        return EchoScoreResult(
            diversity_score=components["diversity"],
            accuracy_score=components["accuracy"],
            switch_speed_score=components["switch_speed"],
            consistency_score=components["consistency"],
            improvement_score=components["improvement"],
            total_score=combine(components, self.weights),
            calculation_details=details,
            score_date=today,
        )

    async def calculate_and_save(
        self, user_id: int, days: Optional[int] = None, now: Optional[datetime] = None
    ) -> EchoScoreResult:
        """Compute, append a history row and refresh the user's cached total."""
        result = await self.calculate(user_id, days=days, now=now)

        row = EchoScoreHistory(
            user_id=user_id,
            diversity_score=result.diversity_score,
            accuracy_score=result.accuracy_score,
            switch_speed_score=result.switch_speed_score,
            consistency_score=result.consistency_score,
            improvement_score=result.improvement_score,
            total_score=result.total_score,
            calculation_details=result.calculation_details,
            score_date=result.score_date,
        )
        self.db.add(row)

        user = await self.db.get(User, user_id)
        if user is not None:
            user.echo_score = result.total_score
        await self.db.flush()

        logger.info(f"[echo] user={user_id} total={result.total_score} saved as history #{row.id}")
        return EchoScoreResult.from_row(row)

    async def get_latest(self, user_id: int) -> Optional[EchoScoreResult]:
        result = await self.db.execute(
            select(EchoScoreHistory)
            .where(EchoScoreHistory.user_id == user_id)
            .order_by(EchoScoreHistory.score_date.desc(), EchoScoreHistory.id.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return EchoScoreResult.from_row(row) if row else None

    async def get_history(
        self, user_id: int, days: Optional[int] = None, now: Optional[datetime] = None
    ) -> List[EchoScoreResult]:
        rows = await self._history_rows(user_id, days, now)
        return [EchoScoreResult.from_row(r) for r in rows]

    async def get_progress(
        self, user_id: int, period: str = "daily", days: int = 30, now: Optional[datetime] = None
    ) -> ScoreProgress:
        """Latest score per day (or ISO week) plus first-to-last change per component."""
        if period not in PROGRESS_PERIODS:
            raise ValidationError('Period must be either "daily" or "weekly".')

        rows = await self._history_rows(user_id, days, now)
        buckets: Dict[date, EchoScoreHistory] = {}
        for row in rows:
            key = row.score_date
            if period == "weekly":
                key = key - timedelta(days=key.weekday())
            buckets[key] = row      # rows are chronological, last one wins

        scores = [
            {
                "score_date": key,
                "total": row.total_score,
                "diversity": row.diversity_score,
                "accuracy": row.accuracy_score,
                "switch_speed": row.switch_speed_score,
                "consistency": row.consistency_score,
                "improvement": row.improvement_score,
            }
            for key, row in sorted(buckets.items())
        ]

        trends = {}
        for name in ("total", "diversity", "accuracy", "switch_speed", "consistency", "improvement"):
            trends[name] = round(scores[-1][name] - scores[0][name], 2) if len(scores) >= 2 else 0.0

        return ScoreProgress(period=period, days=days, scores=scores, trends=trends)

    # ── Queries ───────────────────────────────────────────────────────────────

    async def _submissions(self, user_id: int, since: Optional[datetime], until: datetime):
        query = select(ChallengeSubmission).where(
            ChallengeSubmission.user_id == user_id,
            ChallengeSubmission.created_at <= until,
        )
        if since is not None:
            query = query.where(ChallengeSubmission.created_at >= since)
        result = await self.db.execute(
            query.order_by(ChallengeSubmission.created_at, ChallengeSubmission.id)
        )
        return result.scalars().all()

    async def _reads(self, user_id: int, since: Optional[datetime], until: datetime):
        query = (
            select(ReadingActivity.created_at, NewsArticle.bias_rating)
            .join(NewsArticle, ReadingActivity.article_id == NewsArticle.id)
            .where(ReadingActivity.user_id == user_id, ReadingActivity.created_at <= until)
        )
        if since is not None:
            query = query.where(ReadingActivity.created_at >= since)
        result = await self.db.execute(query.order_by(ReadingActivity.created_at, ReadingActivity.id))
        return [(created_at, bias) for created_at, bias in result.all()]

    async def _history_rows(self, user_id: int, days: Optional[int], now: Optional[datetime]):
        query = select(EchoScoreHistory).where(EchoScoreHistory.user_id == user_id)
        if days is not None:
            today = (now or datetime.utcnow()).date()
            query = query.where(EchoScoreHistory.score_date >= _window_start(today, days).date())
        result = await self.db.execute(
            query.order_by(EchoScoreHistory.score_date, EchoScoreHistory.id)
        )
        return result.scalars().all()


def _window_start(today: date, days: int) -> datetime:
    """Start of a window of `days` calendar days ending today (inclusive)."""
    if not 1 <= days <= MAX_WINDOW_DAYS:
        raise ValidationError(f"days must be between 1 and {MAX_WINDOW_DAYS}.")
    return datetime.combine(today - timedelta(days=days - 1), time.min)
