from datetime import datetime

from pydantic import EmailStr, Field, field_validator

from app.schemas.common import CamelModel
from app.utils.sanitization import sanitize_string
from app.utils.timeutils import is_valid_timezone


class UserResponse(CamelModel):
    user_id: int
    email: EmailStr
    name: str | None = None
    image: str | None = None
    timezone: str
    has_completed_onboarding: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class GoogleSignIn(CamelModel):
    """Tokens handed over by the browser after the Google consent screen."""
    id_token: str = Field(..., min_length=1)
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: int | None = Field(None, description="Access token expiry, epoch seconds")
    scope: str | None = None
    timezone: str | None = None


class Token(CamelModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserResponse


class TokenData(CamelModel):
    user_id: int
    session_token: str


class ProfileUpdate(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    timezone: str = Field(..., min_length=1)

    @field_validator("name", mode="before")
    @classmethod
    def sanitize(cls, v):
        return sanitize_string(v)

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v):
        if not is_valid_timezone(v):
            raise ValueError(f"Unknown timezone: {v}")
        return v


class ProfileEnvelope(CamelModel):
    success: bool = True
    user: UserResponse


class OnboardingStatus(CamelModel):
    has_completed_onboarding: bool
    onboarding_completed_at: datetime | None = None
    onboarding_skipped: bool


class OnboardingUpdate(CamelModel):
    has_completed_onboarding: bool | None = None
    onboarding_skipped: bool | None = None


class OnboardingEnvelope(CamelModel):
    success: bool = True
    onboarding: OnboardingStatus


class AccountDeleted(CamelModel):
    message: str
    deleted_at: datetime
