# backend/tasks/background.py
"""
FastAPI background tasks run after a response has been sent:
- Echo Score recalculation once a user has been active enough today
- Cache invalidation for per-user previews
"""
import logging
from datetime import datetime, time

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from models.challenge import ChallengeSubmission
from models.echo_score import EchoScoreHistory
from services.echo_score_service import EchoScoreService
from services.submission_service import lock_user_row
from utils.redis_client import cache_delete

logger = logging.getLogger("background_tasks")

SUBMISSIONS_BEFORE_RECALC = 3


def echo_preview_key(user_id: int) -> str:
    return f"echo:current:{user_id}"


async def refresh_echo_score_after_challenge(user_id: int, session_factory: async_sessionmaker) -> None:
    """
    Save a new Echo Score once the user has made SUBMISSIONS_BEFORE_RECALC
    submissions today, at most once per day. Runs in its own session.
    """
    await cache_delete(echo_preview_key(user_id))

    now = datetime.utcnow()
    start_of_day = datetime.combine(now.date(), time.min)
    try:
        async with session_factory() as db:
            # Overlapping tasks for one user queue here, so only the first saves today
            await lock_user_row(db, user_id)
            scored_today = await db.scalar(
                select(func.count(EchoScoreHistory.id)).where(
                    EchoScoreHistory.user_id == user_id,
                    EchoScoreHistory.score_date == now.date(),
                )
            )
            if scored_today:
                logger.debug(f"[echo] user={user_id} already scored today")
                return

            submitted_today = await db.scalar(
                select(func.count(ChallengeSubmission.id)).where(
                    ChallengeSubmission.user_id == user_id,
                    ChallengeSubmission.created_at >= start_of_day,
                )
            )
            if (submitted_today or 0) < SUBMISSIONS_BEFORE_RECALC:
                return

            result = await EchoScoreService(db).calculate_and_save(user_id, now=now)
            await db.commit()
            logger.info(
                f"[echo] user={user_id} recalculated after {submitted_today} submissions: {result.total_score}"
            )
    except Exception:
        # Runs after the response; nobody is left to receive the error
        logger.exception(f"[echo] recalculation failed for user={user_id}")
