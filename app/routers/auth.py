import logging
from datetime import timedelta

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token as google_id_token
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.config import settings
from app.database import get_db
from app.dependencies import get_current_user, get_token_data
from app.exceptions import Unauthorized, ValidationFailed
from app.models.user import Account, Session as SessionModel, User as UserModel
from app.schemas.common import MessageResponse
from app.schemas.user import GoogleSignIn, Token, TokenData
from app.utils.cache import query_cache
from app.utils.rate_limit import AUTH, rate_limited
from app.utils.security import create_access_token, new_session_token
from app.utils.timeutils import is_valid_timezone, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def verify_google_id_token(token: str) -> dict:
    """Blocking: fetches Google's signing certs. Raises ValueError on a bad token."""
    return google_id_token.verify_oauth2_token(
        token, google_requests.Request(), audience=settings.GOOGLE_CLIENT_ID
    )


async def _upsert_user(db: AsyncSession, claims: dict, timezone: str | None) -> UserModel:
    result = await db.execute(
        select(UserModel).filter(
            (UserModel.google_id == claims["sub"]) | (UserModel.email == claims["email"])
        )
    )
    user = result.scalars().first()
    if user is None:
        user = UserModel(
            email=claims["email"],
            timezone=timezone if timezone and is_valid_timezone(timezone) else "UTC",
        )
        db.add(user)
        logger.info("Creating user for %s", claims["email"])

    user.google_id = claims["sub"]
    user.name = claims.get("name") or user.name
    user.image = claims.get("picture") or user.image
    await db.flush()
    return user


async def _upsert_account(db: AsyncSession, user: UserModel, subject: str, data: GoogleSignIn) -> None:
    result = await db.execute(
        select(Account).filter(Account.provider == "google", Account.provider_account_id == subject)
    )
    account = result.scalars().first()
    if account is None:
        account = Account(user_id=user.user_id, provider="google", provider_account_id=subject)
        db.add(account)

    if data.access_token:
        account.access_token = data.access_token
        account.expires_at = data.expires_at
    # Google only returns a refresh token on first consent
    if data.refresh_token:
        account.refresh_token = data.refresh_token
    if data.scope:
        account.scope = data.scope


@router.post("/google", response_model=Token, dependencies=[Depends(rate_limited(AUTH))])
async def sign_in_with_google(data: GoogleSignIn, db: AsyncSession = Depends(get_db)):
    if not settings.GOOGLE_CLIENT_ID:
        raise ValidationFailed("Google sign-in is not configured")

    try:
        claims = await run_in_threadpool(verify_google_id_token, data.id_token)
    except ValueError as e:
        logger.warning("Rejected Google ID token: %s", e)
        raise Unauthorized("Invalid Google ID token")

    if not claims.get("email") or not claims.get("email_verified", False):
        raise Unauthorized("Google account email is not verified")

    user = await _upsert_user(db, claims, data.timezone)
    await _upsert_account(db, user, claims["sub"], data)

    expires_at = utcnow() + timedelta(days=settings.SESSION_MAX_AGE_DAYS)
    session_token = new_session_token()
    db.add(SessionModel(session_token=session_token, user_id=user.user_id, expires_at=expires_at))
    await db.commit()
    await db.refresh(user)

    query_cache.invalidate_user(user.user_id)
    logger.info("User %s signed in", user.user_id)
    return {
        "access_token": create_access_token(user.user_id, session_token, expires_at),
        "token_type": "bearer",
        "expires_at": expires_at,
        "user": user,
    }


@router.post("/signout", response_model=MessageResponse, dependencies=[Depends(rate_limited(AUTH))])
async def sign_out(
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
    token_data: TokenData = Depends(get_token_data),
):
    await db.execute(delete(SessionModel).where(SessionModel.session_token == token_data.session_token))
    await db.commit()
    query_cache.invalidate_user(current_user.user_id)
    logger.info("User %s signed out", current_user.user_id)
    return {"message": "Signed out"}
