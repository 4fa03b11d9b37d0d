# backend/api/routes/content.py
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user
from core.errors import NotFoundError
from db.session import get_db
from models.content import NewsArticle, ReadingActivity
from models.user import User
from schemas.content import ArticleOut, ReadingCreate, ReadingOut
from tasks.background import echo_preview_key
from utils.redis_client import cache_delete

router = APIRouter(prefix="/content", tags=["Content"])


@router.get("/articles", response_model=List[ArticleOut])
async def list_articles(
    bias: Optional[int] = Query(None, ge=-3, le=3),
    limit: int = Query(20, ge=1, le=100),
    _: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    query = select(NewsArticle).where(NewsArticle.is_active == True)  # noqa: E712
    if bias is not None:
        query = query.where(NewsArticle.bias_rating == bias)
    result = await db.execute(
        query.order_by(NewsArticle.published_at.desc(), NewsArticle.id.desc()).limit(limit)
    )
    return result.scalars().all()


@router.post("/articles/{article_id}/read", response_model=ReadingOut, status_code=201)
async def record_reading(
    article_id: int,
    payload: ReadingCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    article = await db.get(NewsArticle, article_id)
    if article is None or not article.is_active:
        raise NotFoundError(f"Article {article_id} not found.")

    reading = ReadingActivity(
        user_id=current_user.id,
        article_id=article_id,
        time_spent_seconds=payload.time_spent_seconds,
        completion_percentage=payload.completion_percentage,
    )
    db.add(reading)
    await db.commit()
    await db.refresh(reading)

    # Diversity and switch speed depend on reads
    background_tasks.add_task(cache_delete, echo_preview_key(current_user.id))
    return reading
