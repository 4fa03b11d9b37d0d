# backend/api/deps.py
"""
Request-scoped dependencies. Services are built per request from the request's
session; nothing is shared through module-level singletons.
"""
from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import AuthError
from core.security import decode_access_token
from db.session import get_db
from models.user import User
from services.adaptive_service import AdaptiveChallengeService
from services.challenge_service import ChallengeService
from services.echo_score_service import EchoScoreService
from services.submission_service import ChallengeSubmissionService

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    user_id = decode_access_token(token)
    if user_id is None:
        raise AuthError("Could not validate credentials")

    user = await db.get(User, user_id)
    if not user or not user.is_active:
        raise AuthError("Could not validate credentials")
    return user


def get_challenge_service(db: AsyncSession = Depends(get_db)) -> ChallengeService:
    return ChallengeService(db)


def get_adaptive_service(db: AsyncSession = Depends(get_db)) -> AdaptiveChallengeService:
    return AdaptiveChallengeService(db)


def get_submission_service(db: AsyncSession = Depends(get_db)) -> ChallengeSubmissionService:
    return ChallengeSubmissionService(db)


def get_echo_score_service(db: AsyncSession = Depends(get_db)) -> EchoScoreService:
    return EchoScoreService(db)
