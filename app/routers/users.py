import logging
from typing import Literal

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_current_user
from app.models.user import User as UserModel
from app.schemas.user import (
    AccountDeleted,
    OnboardingEnvelope,
    OnboardingStatus,
    OnboardingUpdate,
    ProfileEnvelope,
    ProfileUpdate,
    UserResponse,
)
from app.services import account as account_service
from app.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: UserModel = Depends(get_current_user)):
    return current_user


@router.get("/onboarding", response_model=OnboardingStatus)
async def get_onboarding(current_user: UserModel = Depends(get_current_user)):
    return current_user


@router.patch("/onboarding", response_model=OnboardingEnvelope)
async def update_onboarding(
    update_data: OnboardingUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    if update_data.has_completed_onboarding is not None:
        current_user.has_completed_onboarding = update_data.has_completed_onboarding
        if update_data.has_completed_onboarding:
            current_user.onboarding_completed_at = utcnow()

    if update_data.onboarding_skipped is not None:
        current_user.onboarding_skipped = update_data.onboarding_skipped
        if update_data.onboarding_skipped:
            # Skipping the tour counts as finishing it
            current_user.has_completed_onboarding = True
            current_user.onboarding_completed_at = utcnow()

    await db.commit()
    await db.refresh(current_user)
    logger.info("Onboarding updated for user %s", current_user.user_id)
    return {"onboarding": current_user}


@router.patch("/profile", response_model=ProfileEnvelope)
async def update_profile(
    profile: ProfileUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    current_user.name = profile.name
    current_user.timezone = profile.timezone
    await db.commit()
    await db.refresh(current_user)
    return {"user": current_user}


@router.get("/export")
async def export_data(
    export_format: Literal["json", "csv"] = Query("json", alias="format"),
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    export = await account_service.export_user_data(db, current_user)
    if export_format == "csv":
        return PlainTextResponse(
            content=account_service.tasks_to_csv(export),
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=duesync_tasks.csv"},
        )
    return export


@router.delete("/delete", response_model=AccountDeleted)
async def delete_account(
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    return await account_service.delete_account(db, current_user.user_id)
