import secrets

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.config import settings
from app.database import get_db
from app.exceptions import Unauthorized
from app.models.user import Session as SessionModel, User as UserModel
from app.schemas.user import TokenData
from app.services.calendar import CalendarSyncAdapter, calendar_adapter
from app.utils.security import decode_access_token
from app.utils.timeutils import utcnow

bearer_scheme = HTTPBearer(auto_error=False)

LOCAL_HOSTS = {"127.0.0.1", "::1", "localhost"}


def get_calendar_adapter() -> CalendarSyncAdapter:
    return calendar_adapter


async def get_token_data(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> TokenData:
    if credentials is None:
        raise Unauthorized()
    try:
        user_id, session_token = decode_access_token(credentials.credentials)
    except JWTError:
        raise Unauthorized(details="Could not validate credentials")
    return TokenData(user_id=user_id, session_token=session_token)


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    token_data: TokenData = Depends(get_token_data),
) -> UserModel:
    """The JWT only points at a session row; no live, unexpired row means signed out."""
    result = await db.execute(
        select(UserModel)
        .join(SessionModel, SessionModel.user_id == UserModel.user_id)
        .filter(
            SessionModel.session_token == token_data.session_token,
            SessionModel.user_id == token_data.user_id,
            SessionModel.expires_at > utcnow(),
        )
    )
    user = result.scalars().first()
    if user is None:
        raise Unauthorized(details="Session expired or revoked")
    return user


async def require_cron_secret(request: Request) -> None:
    """
    Cron endpoints take `Authorization: Bearer <CRON_SECRET>`. Without a
    configured secret they only answer local callers.
    """
    if settings.CRON_SECRET:
        header = request.headers.get("authorization", "")
        if not secrets.compare_digest(header, f"Bearer {settings.CRON_SECRET}"):
            raise Unauthorized()
        return

    host = request.client.host if request.client else None
    if host not in LOCAL_HOSTS:
        raise Unauthorized(details="CRON_SECRET is not configured")
