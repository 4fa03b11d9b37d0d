# backend/services/challenge_service.py
"""
Read-side queries over the challenge catalogue and a user's submissions:
catalogue lookups, per-user stats, paginated history and the XP leaderboard.
"""
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Dict, List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError, ValidationError
from models.challenge import Challenge, ChallengeSubmission
from models.user import User, UserChallengeStats
from schemas.challenge import ChallengeCreate, parse_challenge_type, parse_content
from services.submission_service import live_streak

LEADERBOARD_TIMEFRAMES = ("daily", "weekly", "allTime")
LEADERBOARD_SIZE = 100
MAX_PAGE_SIZE = 100


@dataclass
class UserStats:
    total_completed: int = 0
    total_correct: int = 0
    accuracy: float = 0.0
    total_xp_earned: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    type_performance: Dict[str, dict] = field(default_factory=dict)
    difficulty_performance: Dict[str, dict] = field(default_factory=dict)


def with_averages(performance: Optional[dict]) -> Dict[str, dict]:
    """Stored running totals to client entries with an average time per answer."""
    return {
        key: {
            "completed": entry.get("completed", 0),
            "correct": entry.get("correct", 0),
            "xp": entry.get("xp", 0),
            "average_time_seconds": (
                round(entry.get("time_spent", 0) / entry["completed"], 2) if entry.get("completed") else 0.0
            ),
        }
        for key, entry in (performance or {}).items()
    }


class ChallengeService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_challenge(self, challenge_id: int) -> Challenge:
        challenge = await self.db.get(Challenge, challenge_id)
        if challenge is None:
            raise NotFoundError(f"Challenge {challenge_id} not found.")
        return challenge

    async def list_challenges(
        self, type: Optional[str] = None, difficulty: Optional[int] = None, is_active: Optional[bool] = True
    ) -> List[Challenge]:
        query = select(Challenge)
        if type:
            query = query.where(Challenge.type == parse_challenge_type(type).value)
        if difficulty is not None:
            query = query.where(Challenge.difficulty == difficulty)
        if is_active is not None:
            query = query.where(Challenge.is_active == is_active)
        result = await self.db.execute(query.order_by(Challenge.id))
        return list(result.scalars().all())

    async def create_challenge(self, payload: ChallengeCreate) -> Challenge:
        """Insert a catalogue entry after checking its content against its type."""
        ctype = parse_challenge_type(payload.type)
        content = parse_content(ctype.value, payload.content)
        challenge = Challenge(
            type=ctype.value,
            title=payload.title,
            prompt=payload.prompt,
            content=content.model_dump(mode="json", exclude_none=True),
            correct_answer=payload.correct_answer,
            explanation=payload.explanation,
            difficulty=payload.difficulty,
            estimated_time_minutes=payload.estimated_time_minutes,
            xp_reward=payload.xp_reward,
            allow_retries=payload.allow_retries,
            is_active=True,
        )
        self.db.add(challenge)
        await self.db.flush()
        return challenge

    async def get_user_stats(self, user_id: int, now: Optional[datetime] = None) -> UserStats:
        today = (now or datetime.utcnow()).date()
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found.")

        result = await self.db.execute(
            select(UserChallengeStats).where(UserChallengeStats.user_id == user_id)
        )
        stats = result.scalar_one_or_none()
        if stats is None:
            return UserStats()

        completed = stats.total_completed or 0
        return UserStats(
            total_completed=completed,
            total_correct=stats.total_correct or 0,
            accuracy=round(stats.total_correct * 100 / completed, 2) if completed else 0.0,
            total_xp_earned=stats.total_xp_earned or 0,
            current_streak=live_streak(user.current_streak, stats.last_streak_date, today),
            longest_streak=stats.longest_streak or 0,
            type_performance=with_averages(stats.type_performance),
            difficulty_performance=with_averages(stats.difficulty_performance),
        )

    async def get_history(self, user_id: int, page: int = 1, limit: int = 20) -> List[dict]:
        if page < 1:
            raise ValidationError("page must be 1 or greater.")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}.")

        result = await self.db.execute(
            select(ChallengeSubmission, Challenge.title, Challenge.type)
            .join(Challenge, ChallengeSubmission.challenge_id == Challenge.id)
            .where(ChallengeSubmission.user_id == user_id)
            .order_by(ChallengeSubmission.created_at.desc(), ChallengeSubmission.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return [
            {
                "submission_id": sub.id,
                "challenge_id": sub.challenge_id,
                "challenge_title": title,
                "challenge_type": ctype,
                "is_correct": sub.is_correct,
                "xp_earned": sub.xp_earned,
                "time_spent_seconds": sub.time_spent_seconds,
                "attempts": sub.attempts,
                "created_at": sub.created_at,
            }
            for sub, title, ctype in result.all()
        ]

    async def get_leaderboard(self, timeframe: str = "weekly", now: Optional[datetime] = None) -> List[dict]:
        if timeframe not in LEADERBOARD_TIMEFRAMES:
            raise ValidationError(f"timeframe must be one of {', '.join(LEADERBOARD_TIMEFRAMES)}.")
        now = now or datetime.utcnow()

        total_xp = func.coalesce(func.sum(ChallengeSubmission.xp_earned), 0).label("total_xp")
        query = (
            select(
                User.id,
                User.username,
                func.count(ChallengeSubmission.id).label("challenges_completed"),
                total_xp,
                func.coalesce(
                    func.sum(case((ChallengeSubmission.is_correct == True, 1), else_=0)), 0  # noqa: E712
                ).label("correct_answers"),
            )
            .join(ChallengeSubmission, ChallengeSubmission.user_id == User.id)
            .where(User.is_active == True)  # noqa: E712
            .group_by(User.id, User.username)
        )
        if timeframe == "daily":
            query = query.where(ChallengeSubmission.created_at >= datetime.combine(now.date(), time.min))
        elif timeframe == "weekly":
            query = query.where(ChallengeSubmission.created_at >= now - timedelta(days=7))

        result = await self.db.execute(
            query.order_by(total_xp.desc(), User.id).limit(LEADERBOARD_SIZE)
        )
        return [
            {
                "rank": rank,
                "user_id": user_id,
                "username": username,
                "challenges_completed": completed,
                "total_xp": int(xp),
                "correct_answers": int(correct),
            }
            for rank, (user_id, username, completed, xp, correct) in enumerate(result.all(), start=1)
        ]
