# backend/schemas/content.py
from datetime import datetime
from typing import Optional

from pydantic import Field

from schemas.base import CamelModel


class ArticleOut(CamelModel):
    id: int
    title: str
    source: str
    url: Optional[str] = None
    summary: Optional[str] = None
    bias_rating: int
    published_at: Optional[datetime] = None


class ReadingCreate(CamelModel):
    time_spent_seconds: int = Field(0, ge=0)
    completion_percentage: float = Field(0.0, ge=0, le=100)


class ReadingOut(CamelModel):
    id: int
    article_id: int
    time_spent_seconds: int
    completion_percentage: float
    created_at: datetime
