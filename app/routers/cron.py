from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import require_cron_secret
from app.services.digests import send_digests
from app.services.lifecycle import generate_recurring_tasks

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(require_cron_secret)])


@router.api_route("/generate-recurring", methods=["GET", "POST"])
async def generate_recurring(db: AsyncSession = Depends(get_db)):
    result = await generate_recurring_tasks(db)
    return {"success": True, **result}


@router.api_route("/send-notifications", methods=["GET", "POST"])
async def send_notifications(db: AsyncSession = Depends(get_db)):
    summary = await send_digests(db)
    return {"success": True, "summary": summary}
