# backend/models/content.py
"""
News articles (ingested by an external job) and users' reading activity.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, Float, DateTime, Text, ForeignKey, CheckConstraint, Index
from sqlalchemy.orm import relationship
from db.session import Base
from db.types import FlexibleBoolean


class NewsArticle(Base):
    __tablename__ = "news_articles"
    __table_args__ = (
        CheckConstraint("bias_rating BETWEEN -3 AND 3", name="ck_articles_bias_rating"),
    )

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(500), nullable=False)
    source = Column(String(200), nullable=False, index=True)
    url = Column(String(1000), nullable=True)
    summary = Column(Text, nullable=True)
    bias_rating = Column(Integer, nullable=False, default=0)    # -3 strongly left … +3 strongly right
    published_at = Column(DateTime, nullable=True)
    is_active = Column(FlexibleBoolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class ReadingActivity(Base):
    __tablename__ = "reading_activity"
    __table_args__ = (
        Index("ix_reading_user_created", "user_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    article_id = Column(Integer, ForeignKey("news_articles.id"), nullable=False)
    time_spent_seconds = Column(Integer, nullable=False, default=0)
    completion_percentage = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    article = relationship("NewsArticle")
