# backend/api/routes/users.py
"""
Profile endpoints.

The stored users.current_streak is only rewritten on submission, so the
profile reports the live streak: 0 once a day has been missed.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_challenge_service, get_current_user
from db.session import get_db
from models.user import User
from schemas.user import ProfileUpdate, UserProfile
from services.challenge_service import ChallengeService

router = APIRouter(prefix="/users", tags=["Users"])


async def _profile_view(user: User, challenges: ChallengeService) -> UserProfile:
    stats = await challenges.get_user_stats(user.id)
    return UserProfile.model_validate(user).model_copy(update={"current_streak": stats.current_streak})


@router.get("/me", response_model=UserProfile)
async def get_my_profile(
    current_user: User = Depends(get_current_user),
    challenges: ChallengeService = Depends(get_challenge_service),
):
    return await _profile_view(current_user, challenges)


@router.patch("/me", response_model=UserProfile)
async def update_my_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    challenges: ChallengeService = Depends(get_challenge_service),
    db: AsyncSession = Depends(get_db),
):
    # Only fields the client sent; bias_profile is stored as plain JSON
    changes = payload.model_dump(exclude_unset=True, exclude_none=True, mode="json")
    for name in ("first_name", "last_name", "avatar_url", "bias_profile"):
        if name in changes:
            setattr(current_user, name, changes[name])
    await db.commit()
    await db.refresh(current_user)
    return await _profile_view(current_user, challenges)
