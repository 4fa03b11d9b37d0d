# backend/services/adaptive_service.py
"""
Adaptive challenge selection.

Ranking precedence for a candidate challenge:
  (a) not already submitted today
  (b) its type's position in the user's recommended focus
      (round robin over all types when there is no focus yet)
  (c) distance between its difficulty and the tier the user has earned for that type
  (d) challenge id, ascending
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ValidationError
from models.challenge import (
    Challenge, ChallengeSubmission, ChallengeType, DailyChallengeSelection, DifficultyLevel,
)
from services.submission_service import lock_user_row

logger = logging.getLogger("adaptive")

PROGRESS_WINDOW_DAYS = 30
STRENGTH_THRESHOLD = 0.8
WEAKNESS_THRESHOLD = 0.5
STRUGGLING_THRESHOLD = 0.4
MIN_SAMPLE_SIZE = 3
TREND_DELTA = 0.1
MAX_RECOMMENDATIONS = 20

ALL_TYPES: List[ChallengeType] = list(ChallengeType)


@dataclass
class TypeStats:
    attempts: int = 0
    correct: int = 0
    last_attempt_at: Optional[datetime] = None

    @property
    def accuracy(self) -> float:
        return self.correct / self.attempts if self.attempts else 0.0


@dataclass
class UserProgress:
    strengths: List[str] = field(default_factory=list)
    weaknesses: List[str] = field(default_factory=list)
    recommended_focus: List[str] = field(default_factory=list)
    progress_trend: str = "stable"
    type_stats: Dict[ChallengeType, TypeStats] = field(default_factory=dict)


@dataclass
class RankedChallenge:
    challenge: Challenge
    reasons: List[str]
    difficulty_adjustment: int = 0
    completed_today: bool = False


def target_tier(stats: Optional[TypeStats]) -> int:
    """Difficulty tier a user has earned for one challenge type."""
    if stats is None or stats.attempts == 0:
        return DifficultyLevel.BEGINNER
    if stats.attempts >= MIN_SAMPLE_SIZE and stats.accuracy >= STRENGTH_THRESHOLD:
        return DifficultyLevel.ADVANCED
    if stats.accuracy < STRUGGLING_THRESHOLD:
        return DifficultyLevel.BEGINNER
    return DifficultyLevel.INTERMEDIATE


def classify_trend(outcomes: List[bool]) -> str:
    """First half of the window vs second half, by accuracy."""
    if len(outcomes) < 2:
        return "stable"
    mid = len(outcomes) // 2
    first, second = outcomes[:mid], outcomes[mid:]
    delta = sum(second) / len(second) - sum(first) / len(first)
    if delta >= TREND_DELTA:
        return "improving"
    if delta <= -TREND_DELTA:
        return "declining"
    return "stable"


def build_progress(rows) -> UserProgress:
    """rows: chronological (type, is_correct, created_at) tuples."""
    if not rows:
        return UserProgress()

    per_type: Dict[ChallengeType, TypeStats] = {}
    for ctype, is_correct, created_at in rows:
        entry = per_type.setdefault(ctype, TypeStats())
        entry.attempts += 1
        entry.correct += int(bool(is_correct))
        entry.last_attempt_at = created_at

    strengths = [
        t.value for t in ALL_TYPES
        if t in per_type
        and per_type[t].attempts >= MIN_SAMPLE_SIZE
        and per_type[t].accuracy >= STRENGTH_THRESHOLD
    ]
    weak = [t for t in ALL_TYPES if t in per_type and per_type[t].accuracy < WEAKNESS_THRESHOLD]
    weak.sort(key=lambda t: (per_type[t].accuracy, per_type[t].last_attempt_at))
    untried = [t for t in ALL_TYPES if t not in per_type]

    return UserProgress(
        strengths=strengths,
        weaknesses=[t.value for t in weak],
        recommended_focus=[t.value for t in weak + untried],
        progress_trend=classify_trend([bool(ok) for _, ok, _ in rows]),
        type_stats=per_type,
    )


class AdaptiveChallengeService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def analyze_user_progress(self, user_id: int, now: Optional[datetime] = None) -> UserProgress:
        now = now or datetime.utcnow()
        since = now - timedelta(days=PROGRESS_WINDOW_DAYS)
        result = await self.db.execute(
            select(Challenge.type, ChallengeSubmission.is_correct, ChallengeSubmission.created_at)
            .join(Challenge, ChallengeSubmission.challenge_id == Challenge.id)
            .where(
                ChallengeSubmission.user_id == user_id,
                ChallengeSubmission.created_at >= since,
                ChallengeSubmission.created_at <= now,
            )
            .order_by(ChallengeSubmission.created_at, ChallengeSubmission.id)
        )
        rows = []
        for ctype, is_correct, created_at in result.all():
            try:
                rows.append((ChallengeType.parse(ctype), is_correct, created_at))
            except ValueError:
                logger.warning(f"[adaptive] ignoring submission for unknown challenge type {ctype!r}")
        return build_progress(rows)

    async def get_next_challenge_for_user(
        self, user_id: int, now: Optional[datetime] = None
    ) -> Optional[Challenge]:
        pick = await self.select_next(user_id, now)
        return pick.challenge if pick else None

    async def select_next(self, user_id: int, now: Optional[datetime] = None) -> Optional[RankedChallenge]:
        """Best eligible challenge with its reasons; None when nothing is eligible."""
        ranked = await self._rank(user_id, now or datetime.utcnow())
        eligible = [r for r in ranked if not r.completed_today]
        return eligible[0] if eligible else None

    async def get_adaptive_challenge_recommendations(
        self, user_id: int, count: int, now: Optional[datetime] = None
    ) -> List[RankedChallenge]:
        if not 1 <= count <= MAX_RECOMMENDATIONS:
            raise ValidationError(f"count must be between 1 and {MAX_RECOMMENDATIONS}.")
        now = now or datetime.utcnow()

        picks = (await self._rank(user_id, now))[:count]
        if picks:
            await lock_user_row(self.db, user_id)
            await self.record_selection(user_id, picks[0], now.date())
        return picks

    async def get_todays_challenge(self, user_id: int, now: Optional[datetime] = None) -> Optional[Challenge]:
        """Today's recorded pick if there is one, otherwise select and record a new one."""
        now = now or datetime.utcnow()
        today = now.date()

        # Concurrent first requests of the day wait here, then find the recorded pick
        await lock_user_row(self.db, user_id)
        existing = await self._selection_for(user_id, today)
        if existing is not None:
            challenge = await self.db.get(Challenge, existing.challenge_id)
            if challenge is not None and challenge.is_active:
                return challenge

        pick = await self.select_next(user_id, now)
        if pick is None:
            return None
        await self.record_selection(user_id, pick, today)
        return pick.challenge

    async def record_selection(self, user_id: int, pick: RankedChallenge, day: date) -> DailyChallengeSelection:
        """Upsert the (user, day) audit row. Callers hold the user row lock."""
        selection = await self._selection_for(user_id, day)
        if selection is None:
            selection = DailyChallengeSelection(user_id=user_id, selection_date=day)
            self.db.add(selection)
        selection.challenge_id = pick.challenge.id
        selection.selection_reasons = list(pick.reasons)
        selection.difficulty_adjustment = pick.difficulty_adjustment
        await self.db.flush()
        logger.info(f"[adaptive] user={user_id} {day} → challenge {pick.challenge.id}: {'; '.join(pick.reasons)}")
        return selection

    # ── Ranking ───────────────────────────────────────────────────────────────

    async def _rank(self, user_id: int, now: datetime) -> List[RankedChallenge]:
        progress = await self.analyze_user_progress(user_id, now)
        done_today = await self._completed_today(user_id, now)

        result = await self.db.execute(
            select(Challenge).where(Challenge.is_active == True).order_by(Challenge.id)  # noqa: E712
        )
        challenges = result.scalars().all()

        focus = [ChallengeType(t) for t in progress.recommended_focus]
        if focus:
            type_order = focus + [t for t in ALL_TYPES if t not in focus]
        else:
            offset = await self._previous_selection_count(user_id, now.date())
            shift = offset % len(ALL_TYPES)
            type_order = ALL_TYPES[shift:] + ALL_TYPES[:shift]
        position = {t: i for i, t in enumerate(type_order)}
        weaknesses = set(progress.weaknesses)
        is_new_user = not progress.type_stats

        ranked = []
        for challenge in challenges:
            try:
                ctype = ChallengeType.parse(challenge.type)
            except ValueError:
                logger.warning(f"[adaptive] skipping challenge {challenge.id} with unknown type {challenge.type!r}")
                continue
            type_stats = progress.type_stats.get(ctype)
            tier = target_tier(type_stats)

            reasons = []
            if ctype.value in weaknesses:
                reasons.append(f"weak in {ctype.value}")
            elif ctype in focus:
                reasons.append(f"not yet attempted: {ctype.value}")
            elif not focus:
                reasons.append(f"round-robin coverage: {ctype.value}")
            if is_new_user:
                reasons.append("new user: beginner tier")
            if challenge.difficulty == tier:
                reasons.append(f"matches difficulty tier {tier}")
            else:
                reasons.append(f"closest available to difficulty tier {tier}")
            completed = challenge.id in done_today
            if completed:
                reasons.append("already completed today")

            adjustment = tier - DifficultyLevel.INTERMEDIATE if type_stats else 0
            ranked.append((
                (completed, position[ctype], abs(challenge.difficulty - tier), challenge.id),
                RankedChallenge(challenge, reasons, int(adjustment), completed),
            ))

        ranked.sort(key=lambda pair: pair[0])
        return [pick for _, pick in ranked]

    async def _completed_today(self, user_id: int, now: datetime) -> set:
        start = datetime.combine(now.date(), time.min)
        result = await self.db.execute(
            select(ChallengeSubmission.challenge_id).where(
                ChallengeSubmission.user_id == user_id,
                ChallengeSubmission.created_at >= start,
                ChallengeSubmission.created_at < start + timedelta(days=1),
            )
        )
        return set(result.scalars().all())

    async def _previous_selection_count(self, user_id: int, today: date) -> int:
        result = await self.db.execute(
            select(func.count(DailyChallengeSelection.id)).where(
                DailyChallengeSelection.user_id == user_id,
                DailyChallengeSelection.selection_date < today,
            )
        )
        return result.scalar_one() or 0

    async def _selection_for(self, user_id: int, day: date) -> Optional[DailyChallengeSelection]:
        result = await self.db.execute(
            select(DailyChallengeSelection).where(
                DailyChallengeSelection.user_id == user_id,
                DailyChallengeSelection.selection_date == day,
            )
        )
        return result.scalar_one_or_none()
