# backend/api/routes/challenges.py
"""
Daily challenge endpoints.

GET  /challenges                          → Active catalogue (answers stripped)
GET  /challenges/today                    → Today's adaptive pick (recorded per user per day)
GET  /challenges/adaptive/next            → Best eligible challenge right now
GET  /challenges/adaptive/recommendations → Ranked candidates, top pick recorded
GET  /challenges/progress                 → Strengths, weaknesses, focus, trend
POST /challenges/batch-submit             → Up to 10 answers, errors reported per item
POST /challenges/{id}/submit              → Grade one answer, award XP, update streak
GET  /challenges/stats | history | leaderboard
GET  /challenges/{id}                     → One catalogue entry (answers stripped)
"""
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.deps import (
    get_adaptive_service, get_challenge_service, get_current_user, get_submission_service,
)
from core.errors import NotFoundError
from db.session import get_db, get_session_factory
from models.user import User
from schemas.challenge import (
    BatchItemOut, BatchSubmitOut, BatchSubmitRequest, ChallengeOut, ChallengeStatsOut,
    HistoryOut, LeaderboardEntry, ProgressOut, RecommendationsOut, RecommendedChallenge,
    SubmissionResultOut, SubmitRequest,
)
from services.adaptive_service import AdaptiveChallengeService
from services.challenge_service import ChallengeService
from services.submission_service import ChallengeSubmissionService
from tasks.background import refresh_echo_score_after_challenge
from utils.redis_client import cache_get, cache_set

router = APIRouter(prefix="/challenges", tags=["Challenges"])

LEADERBOARD_CACHE_TTL = 60


@router.get("", response_model=List[ChallengeOut])
async def list_challenges(
    type: Optional[str] = None,
    difficulty: Optional[int] = Query(None, ge=1, le=4),
    _: User = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    challenges = await service.list_challenges(type=type, difficulty=difficulty)
    return [ChallengeOut.from_challenge(c) for c in challenges]


@router.get("/today", response_model=ChallengeOut)
async def get_today_challenge(
    current_user: User = Depends(get_current_user),
    adaptive: AdaptiveChallengeService = Depends(get_adaptive_service),
):
    challenge = await adaptive.get_todays_challenge(current_user.id)
    if challenge is None:
        raise NotFoundError("No challenge available for today.")
    return ChallengeOut.from_challenge(challenge)


@router.get("/adaptive/next", response_model=RecommendedChallenge)
async def get_adaptive_challenge(
    current_user: User = Depends(get_current_user),
    adaptive: AdaptiveChallengeService = Depends(get_adaptive_service),
):
    pick = await adaptive.select_next(current_user.id)
    if pick is None:
        raise NotFoundError("No adaptive challenge available.")
    out = ChallengeOut.from_challenge(pick.challenge)
    return RecommendedChallenge(**out.model_dump(), reasons=pick.reasons)


@router.get("/adaptive/recommendations", response_model=RecommendationsOut)
async def get_adaptive_recommendations(
    count: int = 3,
    current_user: User = Depends(get_current_user),
    adaptive: AdaptiveChallengeService = Depends(get_adaptive_service),
):
    picks = await adaptive.get_adaptive_challenge_recommendations(current_user.id, count)
    recommendations = [
        RecommendedChallenge(**ChallengeOut.from_challenge(p.challenge).model_dump(), reasons=p.reasons)
        for p in picks
    ]
    return RecommendationsOut(recommendations=recommendations, count=len(recommendations))


@router.get("/progress", response_model=ProgressOut)
async def get_user_progress(
    current_user: User = Depends(get_current_user),
    adaptive: AdaptiveChallengeService = Depends(get_adaptive_service),
):
    return await adaptive.analyze_user_progress(current_user.id)


@router.post("/batch-submit", response_model=BatchSubmitOut)
async def batch_submit(
    payload: BatchSubmitRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    submissions: ChallengeSubmissionService = Depends(get_submission_service),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    user_id = current_user.id
    results = await submissions.submit_batch(user_id, payload.submissions)
    await db.commit()

    items = [
        BatchItemOut(
            index=r.index,
            challenge_id=r.challenge_id,
            success=r.success,
            result=SubmissionResultOut.model_validate(r.result) if r.result else None,
            error=r.error,
        )
        for r in results
    ]
    succeeded = sum(1 for i in items if i.success)
    if succeeded:
        background_tasks.add_task(refresh_echo_score_after_challenge, user_id, session_factory)
    return BatchSubmitOut(results=items, succeeded=succeeded, failed=len(items) - succeeded)


@router.post("/{challenge_id}/submit", response_model=SubmissionResultOut)
async def submit_challenge(
    challenge_id: int,
    payload: SubmitRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    submissions: ChallengeSubmissionService = Depends(get_submission_service),
    db: AsyncSession = Depends(get_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    user_id = current_user.id
    result = await submissions.submit(user_id, challenge_id, payload.answer, payload.time_spent_seconds)
    await db.commit()

    background_tasks.add_task(refresh_echo_score_after_challenge, user_id, session_factory)
    return result


@router.get("/stats", response_model=ChallengeStatsOut)
async def get_challenge_stats(
    current_user: User = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    return await service.get_user_stats(current_user.id)


@router.get("/history", response_model=HistoryOut)
async def get_challenge_history(
    page: int = 1,
    limit: int = 20,
    current_user: User = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    history = await service.get_history(current_user.id, page=page, limit=limit)
    return HistoryOut(history=history, page=page, limit=limit)


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
async def get_leaderboard(
    timeframe: str = "weekly",
    _: User = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    cache_key = f"leaderboard:{timeframe}"
    cached = await cache_get(cache_key)
    if cached is not None:
        return cached

    leaderboard = await service.get_leaderboard(timeframe)
    await cache_set(cache_key, leaderboard, ttl=LEADERBOARD_CACHE_TTL)
    return leaderboard


@router.get("/{challenge_id}", response_model=ChallengeOut)
async def get_challenge(
    challenge_id: int,
    _: User = Depends(get_current_user),
    service: ChallengeService = Depends(get_challenge_service),
):
    return ChallengeOut.from_challenge(await service.get_challenge(challenge_id))
