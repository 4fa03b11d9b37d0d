# backend/api/routes/echo_score.py
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_echo_score_service
from core.errors import NotFoundError
from db.session import get_db
from models.user import User
from schemas.echo_score import EchoScoreOut, EchoScoreProgressOut
from services.echo_score_service import EchoScoreService
from tasks.background import echo_preview_key
from utils.redis_client import cache_get, cache_set

router = APIRouter(prefix="/echo-score", tags=["Echo Score"])


@router.get("/current", response_model=EchoScoreOut)
async def get_current_score(
    days: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    service: EchoScoreService = Depends(get_echo_score_service),
):
    """Preview: calculated on the fly, nothing is saved. All-history previews are cached."""
    cache_key = echo_preview_key(current_user.id) if days is None else None
    if cache_key:
        cached = await cache_get(cache_key)
        if cached is not None:
            return cached

    score = EchoScoreOut.model_validate(await service.calculate(current_user.id, days=days))
    if cache_key:
        await cache_set(cache_key, score.model_dump(mode="json"))
    return score


@router.post("/calculate", response_model=EchoScoreOut, status_code=201)
async def calculate_and_save(
    days: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    service: EchoScoreService = Depends(get_echo_score_service),
    db: AsyncSession = Depends(get_db),
):
    score = await service.calculate_and_save(current_user.id, days=days)
    await db.commit()
    return score


@router.get("/latest", response_model=EchoScoreOut)
async def get_latest_score(
    current_user: User = Depends(get_current_user),
    service: EchoScoreService = Depends(get_echo_score_service),
):
    latest = await service.get_latest(current_user.id)
    if latest is None:
        raise NotFoundError("No Echo Score found for this user.")
    return latest


@router.get("/history", response_model=List[EchoScoreOut])
async def get_score_history(
    days: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    service: EchoScoreService = Depends(get_echo_score_service),
):
    return await service.get_history(current_user.id, days=days)


@router.get("/progress", response_model=EchoScoreProgressOut)
async def get_score_progress(
    period: str = "daily",
    days: int = 30,
    current_user: User = Depends(get_current_user),
    service: EchoScoreService = Depends(get_echo_score_service),
):
    return await service.get_progress(current_user.id, period=period, days=days)
