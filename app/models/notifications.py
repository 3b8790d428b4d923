import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON, Enum
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.timeutils import utcnow


class WeekDay(str, enum.Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"


DEFAULT_REMINDER_MINUTES = [15, 60]


class NotificationPreference(Base):
    __tablename__ = "notification_preferences"

    preference_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), unique=True, nullable=False)

    push_notifications_enabled = Column(Boolean, default=False, nullable=False)
    push_subscription = Column(JSON, nullable=True)
    reminder_minutes_before = Column(JSON, default=lambda: list(DEFAULT_REMINDER_MINUTES), nullable=False)

    daily_email_enabled = Column(Boolean, default=True, nullable=False)
    daily_email_time = Column(String(5), default="08:00", nullable=False)
    weekly_email_enabled = Column(Boolean, default=True, nullable=False)
    weekly_email_day = Column(Enum(WeekDay, native_enum=False, length=10), default=WeekDay.MONDAY, nullable=False)
    weekly_email_time = Column(String(5), default="09:00", nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User")
