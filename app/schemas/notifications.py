from pydantic import AnyHttpUrl, Field, field_validator

from app.models.notifications import WeekDay
from app.schemas.common import CamelModel
from app.utils.timeutils import HHMM_PATTERN, normalize_hhmm


class PushKeys(CamelModel):
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class PushSubscription(CamelModel):
    """Browser PushSubscription.toJSON() payload."""
    endpoint: AnyHttpUrl
    expiration_time: float | None = None
    keys: PushKeys


class PreferencesUpdate(CamelModel):
    daily_email_enabled: bool | None = None
    daily_email_time: str | None = Field(None, pattern=HHMM_PATTERN)
    weekly_email_enabled: bool | None = None
    weekly_email_day: WeekDay | None = None
    weekly_email_time: str | None = Field(None, pattern=HHMM_PATTERN)
    push_notifications_enabled: bool | None = None
    reminder_minutes_before: list[int] | None = None

    @field_validator("daily_email_time", "weekly_email_time")
    @classmethod
    def pad_time(cls, v):
        return normalize_hhmm(v) if v else v

    @field_validator("reminder_minutes_before")
    @classmethod
    def positive_minutes(cls, v):
        if v is not None and any(m < 1 or m > 10080 for m in v):
            raise ValueError("Reminder offsets must be between 1 minute and 7 days")
        return sorted(set(v)) if v is not None else v


class Preferences(CamelModel):
    push_notifications_enabled: bool
    push_subscription: dict | None = None
    reminder_minutes_before: list[int]
    daily_email_enabled: bool
    daily_email_time: str
    weekly_email_enabled: bool
    weekly_email_day: WeekDay
    weekly_email_time: str


class PreferencesEnvelope(CamelModel):
    success: bool = True
    message: str | None = None
    preferences: Preferences


class SubscribeResult(CamelModel):
    success: bool = True
    message: str
    subscription: dict | None = None
