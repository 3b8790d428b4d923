from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.exceptions import ValidationFailed
from app.models.user import User as UserModel
from app.schemas.notifications import PreferencesEnvelope, PreferencesUpdate, PushSubscription, SubscribeResult
from app.services import notifications as notification_service
from app.services.digests import send_test_email
from app.utils.email import smtp_configured
from app.utils.rate_limit import PUSH, rate_limited

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/preferences", response_model=PreferencesEnvelope)
async def get_preferences(
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    prefs = await notification_service.get_preferences(db, current_user)
    return {"preferences": prefs}


@router.patch("/preferences", response_model=PreferencesEnvelope)
async def update_preferences(
    patch: PreferencesUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    prefs = await notification_service.update_preferences(db, current_user, patch)
    return {"preferences": prefs, "message": "Notification preferences updated"}


@router.post("/preferences/test")
async def send_test_notification(current_user: UserModel = Depends(get_current_user)):
    if not smtp_configured():
        raise ValidationFailed("Email delivery is not configured on this server")
    await send_test_email(current_user)
    return {"success": True, "message": f"Test email queued for {current_user.email}"}


@router.post("/push/subscribe", response_model=SubscribeResult, dependencies=[Depends(rate_limited(PUSH))])
async def subscribe_push(
    payload: PushSubscription,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    prefs = await notification_service.subscribe(db, current_user, payload)
    return {"message": "Push subscription saved", "subscription": prefs.push_subscription}


@router.delete("/push/unsubscribe", response_model=SubscribeResult, dependencies=[Depends(rate_limited(PUSH))])
async def unsubscribe_push(
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    await notification_service.unsubscribe(db, current_user)
    return {"message": "Push notifications disabled"}
