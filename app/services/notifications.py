import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from app.exceptions import NotFoundOrNotOwned
from app.models.notifications import NotificationPreference
from app.models.user import User
from app.schemas.notifications import PreferencesUpdate, PushSubscription

logger = logging.getLogger(__name__)


async def _find(db: AsyncSession, user_id: int) -> NotificationPreference | None:
    result = await db.execute(
        select(NotificationPreference).filter(NotificationPreference.user_id == user_id)
    )
    return result.scalars().first()


async def subscribe(db: AsyncSession, user: User, payload: PushSubscription) -> NotificationPreference:
    """Store the browser's push subscription; creates the preference row with defaults if needed."""
    subscription = payload.model_dump(mode="json", by_alias=True)
    prefs = await _find(db, user.user_id)
    if prefs is None:
        prefs = NotificationPreference(user_id=user.user_id)
        db.add(prefs)

    prefs.push_notifications_enabled = True
    prefs.push_subscription = subscription
    await db.commit()
    await db.refresh(prefs)
    logger.info("Push subscription stored for user %s", user.user_id)
    return prefs


async def unsubscribe(db: AsyncSession, user: User) -> NotificationPreference:
    prefs = await _find(db, user.user_id)
    if prefs is None:
        raise NotFoundOrNotOwned("Notification preferences not found")

    prefs.push_notifications_enabled = False
    prefs.push_subscription = None
    await db.commit()
    await db.refresh(prefs)
    logger.info("Push subscription removed for user %s", user.user_id)
    return prefs


async def get_preferences(db: AsyncSession, user: User) -> NotificationPreference:
    prefs = await _find(db, user.user_id)
    if prefs is None:
        prefs = NotificationPreference(user_id=user.user_id, push_notifications_enabled=False)
        db.add(prefs)
        await db.commit()
        await db.refresh(prefs)
    return prefs


async def update_preferences(db: AsyncSession, user: User, patch: PreferencesUpdate) -> NotificationPreference:
    prefs = await _find(db, user.user_id)
    if prefs is None:
        prefs = NotificationPreference(user_id=user.user_id)
        db.add(prefs)

    for field, value in patch.model_dump(exclude_none=True).items():
        setattr(prefs, field, value)

    await db.commit()
    await db.refresh(prefs)
    return prefs
