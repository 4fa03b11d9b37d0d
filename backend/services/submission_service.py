# backend/services/submission_service.py
"""
Challenge submission pipeline.

One submission runs, in order:
  1. lock the user row and validate challenge, retry policy and answer shape
  2. grade the answer
  3. compute XP (streak multiplier, speed bonus/penalty)
  4. advance the streak
  5. write the submission row, user_challenge_stats and the user's streak/XP

Nothing is written before step 5, so a validation failure leaves no trace and
a batch can keep going past a bad item. Everything is flushed into the
caller's transaction; the request session commits or rolls back as a unit.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Iterable, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError, PerspectiveError, ValidationError
from models.challenge import Challenge, ChallengeSubmission, ChallengeType
from models.user import User, UserChallengeStats
from schemas.challenge import claimed_challenge_id, parse_batch_item
from services.grading import build_feedback, calculate_xp, is_correct_answer, validate_answer

logger = logging.getLogger("submissions")

MAX_BATCH_SIZE = 10


@dataclass
class StreakInfo:
    current: int
    longest: int
    is_active_today: bool
    streak_maintained: bool
    is_new_record: bool


@dataclass
class SubmissionResult:
    submission_id: int
    challenge_id: int
    is_correct: bool
    feedback: str
    xp_earned: int
    attempts: int
    streak_info: StreakInfo


@dataclass
class BatchItemResult:
    index: int
    challenge_id: Optional[int]
    result: Optional[SubmissionResult] = None
    error: Optional[dict] = None

    @property
    def success(self) -> bool:
        return self.error is None


async def lock_user_row(db: AsyncSession, user_id: int) -> Optional[User]:
    """
    SELECT … FOR UPDATE on the user row. Per-user writes (submissions, daily
    selections, saved scores) take it first so concurrent requests queue up.
    """
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def live_streak(current_streak: int, last_streak_date: Optional[date], today: date) -> int:
    """A streak whose last qualifying day is before yesterday is already broken."""
    if last_streak_date is None or last_streak_date < today - timedelta(days=1):
        return 0
    return current_streak or 0


def advance_streak(user: User, stats: UserChallengeStats, is_correct: bool, today: date) -> StreakInfo:
    """
    Only correct answers qualify. The first qualifying answer of a day extends a
    streak that was alive yesterday, or restarts it at 1 after a missed day.
    A wrong answer that finds the streak broken zeroes it.
    """
    last = stats.last_streak_date
    current = user.current_streak or 0
    yesterday = today - timedelta(days=1)
    maintained = last is None or last >= yesterday

    if is_correct:
        if last is not None and last >= today:
            pass
        elif last == yesterday:
            current += 1
        else:
            current = 1
        stats.last_streak_date = max(today, last) if last else today
    elif not maintained:
        current = 0

    is_new_record = current > (stats.longest_streak or 0)
    if is_new_record:
        stats.longest_streak = current
    user.current_streak = current

    return StreakInfo(
        current=current,
        longest=stats.longest_streak or 0,
        is_active_today=stats.last_streak_date is not None and stats.last_streak_date >= today,
        streak_maintained=maintained,
        is_new_record=is_new_record,
    )


class ChallengeSubmissionService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def submit(
        self,
        user_id: int,
        challenge_id: int,
        answer: Any,
        time_spent_seconds: int,
        now: Optional[datetime] = None,
    ) -> SubmissionResult:
        now = now or datetime.utcnow()
        today = now.date()

        # 1. Validate (reads only)
        if not isinstance(time_spent_seconds, int) or time_spent_seconds < 0:
            raise ValidationError("timeSpentSeconds must be a non-negative integer.")
        user = await self._lock_user(user_id)
        challenge = await self.db.get(Challenge, challenge_id)
        if challenge is None:
            raise NotFoundError(f"Challenge {challenge_id} not found.")
        if not challenge.is_active:
            raise ValidationError(f"Challenge {challenge_id} is not active.")

        prior_attempts, solved = await self._attempt_history(user_id, challenge_id)
        if solved and not challenge.allow_retries:
            raise ValidationError(f"Challenge {challenge_id} has already been completed and allows no retries.")
        cleaned_answer = validate_answer(challenge, answer)

        stats = await self._get_or_create_stats(user_id)

        # 2. Grade
        is_correct = is_correct_answer(challenge.correct_answer, cleaned_answer)

        # 3. XP, using the streak as it stood before this answer
        streak_before = live_streak(user.current_streak, stats.last_streak_date, today)
        xp_earned = calculate_xp(challenge, is_correct, time_spent_seconds, streak_before)
        feedback = build_feedback(challenge, is_correct)

        # 4. Streak
        streak_info = advance_streak(user, stats, is_correct, today)

        # 5. Persist
        submission = ChallengeSubmission(
            user_id=user_id,
            challenge_id=challenge_id,
            user_answer=cleaned_answer,
            is_correct=is_correct,
            time_spent_seconds=time_spent_seconds,
            attempts=prior_attempts + 1,
            xp_earned=xp_earned,
            feedback=feedback,
            created_at=now,
        )
        self.db.add(submission)
        self._apply_stats(
            stats, ChallengeType.parse(challenge.type), challenge.difficulty,
            is_correct, xp_earned, time_spent_seconds,
        )
        user.total_xp = (user.total_xp or 0) + xp_earned
        user.last_activity_date = today
        await self.db.flush()

        logger.info(
            f"[submit] user={user_id} challenge={challenge_id} attempt={submission.attempts} "
            f"correct={is_correct} xp={xp_earned} streak={streak_info.current}"
        )
        return SubmissionResult(
            submission_id=submission.id,
            challenge_id=challenge_id,
            is_correct=is_correct,
            feedback=feedback,
            xp_earned=xp_earned,
            attempts=submission.attempts,
            streak_info=streak_info,
        )

    async def submit_batch(
        self, user_id: int, items: Iterable, now: Optional[datetime] = None
    ) -> List[BatchItemResult]:
        """
        Items are BatchSubmitItem instances or raw request dicts. A malformed
        item and any domain error are reported on that item alone;
        infrastructure errors propagate.
        """
        items = list(items)
        if not items:
            raise ValidationError("Batch must contain at least one submission.")
        if len(items) > MAX_BATCH_SIZE:
            raise ValidationError(f"Batch may contain at most {MAX_BATCH_SIZE} submissions.")

        results = []
        for index, raw in enumerate(items):
            challenge_id = claimed_challenge_id(raw)
            try:
                item = parse_batch_item(raw)
                result = await self.submit(
                    user_id, item.challenge_id, item.answer, item.time_spent_seconds, now=now
                )
                results.append(BatchItemResult(index=index, challenge_id=item.challenge_id, result=result))
            except PerspectiveError as exc:
                logger.info(f"[batch] user={user_id} item={index} rejected: {exc.code} {exc.message}")
                results.append(BatchItemResult(index=index, challenge_id=challenge_id, error=exc.to_dict()))

        failed = sum(1 for r in results if not r.success)
        logger.info(f"[batch] user={user_id} processed={len(results)} failed={failed}")
        return results

    # ── Helpers ───────────────────────────────────────────────────────────────

    async def _lock_user(self, user_id: int) -> User:
        user = await lock_user_row(self.db, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found.")
        return user

    async def _attempt_history(self, user_id: int, challenge_id: int):
        result = await self.db.execute(
            select(
                func.count(ChallengeSubmission.id),
                func.coalesce(func.sum(case((ChallengeSubmission.is_correct == True, 1), else_=0)), 0),  # noqa: E712
            ).where(
                ChallengeSubmission.user_id == user_id,
                ChallengeSubmission.challenge_id == challenge_id,
            )
        )
        attempts, correct = result.one()
        return attempts or 0, bool(correct)

    async def _get_or_create_stats(self, user_id: int) -> UserChallengeStats:
        result = await self.db.execute(
            select(UserChallengeStats)
            .where(UserChallengeStats.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        stats = result.scalar_one_or_none()
        if stats is None:
            stats = UserChallengeStats(
                user_id=user_id,
                total_completed=0,
                total_correct=0,
                total_xp_earned=0,
                longest_streak=0,
                type_performance={},
                difficulty_performance={},
            )
            self.db.add(stats)
        return stats

    @staticmethod
    def _apply_stats(
        stats: UserChallengeStats,
        ctype: ChallengeType,
        difficulty: int,
        is_correct: bool,
        xp: int,
        time_spent: int,
    ) -> None:
        stats.total_completed = (stats.total_completed or 0) + 1
        stats.total_correct = (stats.total_correct or 0) + int(is_correct)
        stats.total_xp_earned = (stats.total_xp_earned or 0) + xp
        stats.type_performance = _bump(stats.type_performance, ctype.value, is_correct, xp, time_spent)
        stats.difficulty_performance = _bump(
            stats.difficulty_performance, str(difficulty), is_correct, xp, time_spent
        )


def _bump(performance: Optional[dict], key: str, is_correct: bool, xp: int, time_spent: int) -> dict:
    # JSON columns only notice reassignment, so build a fresh dict
    updated = {k: dict(v) for k, v in (performance or {}).items()}
    entry = updated.setdefault(key, {"completed": 0, "correct": 0, "xp": 0, "time_spent": 0})
    entry["completed"] += 1
    entry["correct"] += int(is_correct)
    entry["xp"] += xp
    entry["time_spent"] = entry.get("time_spent", 0) + time_spent
    return updated
