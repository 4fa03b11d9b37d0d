# backend/schemas/user.py
from datetime import date, datetime
from typing import Optional, List
from pydantic import BaseModel, EmailStr, Field, field_validator

from schemas.base import CamelModel


# ── Auth ──────────────────────────────────────────────────────────────────────

class UserRegister(CamelModel):
    email: EmailStr
    username: str = Field(min_length=3, max_length=100)
    password: str = Field(min_length=8)
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"
    user_id: int
    username: str


# ── Profile ───────────────────────────────────────────────────────────────────

class BiasProfile(CamelModel):
    political_lean: int = Field(0, ge=-3, le=3)
    preferred_sources: List[str] = []
    blind_spots: List[str] = []
    initial_assessment_score: Optional[float] = None
    assessment_date: Optional[date] = None


class UserProfile(CamelModel):
    id: int
    email: str
    username: str
    first_name: Optional[str]
    last_name: Optional[str]
    avatar_url: Optional[str]
    bias_profile: Optional[BiasProfile]
    echo_score: float
    current_streak: int
    total_xp: int
    last_activity_date: Optional[date]
    created_at: datetime


class ProfileUpdate(CamelModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    avatar_url: Optional[str] = None
    bias_profile: Optional[BiasProfile] = None

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v is not None else v
