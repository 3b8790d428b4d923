import secrets
from datetime import datetime

from jose import JWTError, jwt

from app.config import settings


def new_session_token() -> str:
    return secrets.token_urlsafe(32)


def create_access_token(user_id: int, session_token: str, expires_at: datetime) -> str:
    """Bearer token pointing at a server-side session row; revoking the row revokes the token."""
    to_encode = {"sub": str(user_id), "sid": session_token, "exp": expires_at}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> tuple[int, str]:
    """Returns (user_id, session_token); raises JWTError on anything malformed."""
    payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    subject = payload.get("sub")
    session_token = payload.get("sid")
    if subject is None or session_token is None:
        raise JWTError("Token is missing sub or sid")
    try:
        return int(subject), session_token
    except ValueError as exc:
        raise JWTError("Token subject is not a user id") from exc
