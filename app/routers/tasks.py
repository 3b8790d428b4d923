import math
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_calendar_adapter, get_current_user
from app.models.tasks import Priority, Status
from app.models.user import User as UserModel
from app.schemas.common import MessageResponse
from app.schemas.task import CalendarSyncResult, TaskCreate, TaskEnvelope, TaskList, TaskUpdate, TodayTasks
from app.services import lifecycle
from app.services import tasks as task_service
from app.services.calendar import CalendarSyncAdapter
from app.services.scope import UserScope
from app.utils.rate_limit import CALENDAR, rate_limited

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=TaskList)
async def list_tasks(
    status_filter: Status | None = Query(None, alias="status"),
    priority: Priority | None = None,
    category_id: int | None = Query(None, alias="categoryId"),
    tag_id: int | None = Query(None, alias="tagId"),
    search: str | None = Query(None, max_length=200),
    on_date: date | None = Query(None, alias="date"),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    tasks, total = await task_service.list_tasks(
        db,
        current_user,
        status=status_filter,
        priority=priority,
        category_id=category_id,
        tag_id=tag_id,
        search=search,
        on_date=on_date,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return {
        "tasks": tasks,
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit),
    }


@router.post("", response_model=TaskEnvelope, status_code=status.HTTP_201_CREATED)
async def create_task(
    task_data: TaskCreate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    task = await task_service.create_task(db, current_user, task_data)
    return {"task": task, "message": "Task created successfully"}


# Declared before /{task_id} so "today" is not parsed as an id
@router.get("/today", response_model=TodayTasks)
async def get_today_tasks(
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    return await lifecycle.list_today(db, current_user)


@router.get("/{task_id}", response_model=TaskEnvelope)
async def get_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
):
    task = await task_service.get_task_by_id(UserScope(db, current_user.user_id), task_id)
    return {"task": task}


@router.patch("/{task_id}", response_model=TaskEnvelope)
async def update_task(
    task_id: int,
    update_data: TaskUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
    adapter: CalendarSyncAdapter = Depends(get_calendar_adapter),
):
    task = await lifecycle.update_task(db, current_user, task_id, update_data, adapter)
    return {"task": task, "message": "Task updated successfully"}


@router.delete("/{task_id}", response_model=MessageResponse)
async def delete_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
    adapter: CalendarSyncAdapter = Depends(get_calendar_adapter),
):
    await lifecycle.delete_task(db, current_user, task_id, adapter)
    return {"message": "Task deleted successfully"}


@router.post(
    "/{task_id}/calendar",
    response_model=CalendarSyncResult,
    dependencies=[Depends(rate_limited(CALENDAR))],
)
async def toggle_calendar_sync(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
    adapter: CalendarSyncAdapter = Depends(get_calendar_adapter),
):
    task, synced = await lifecycle.toggle_calendar_sync(db, current_user, task_id, adapter)
    message = "Task synced to Google Calendar" if synced else "Task removed from Google Calendar"
    return {"message": message, "task": task, "synced": synced}


@router.delete(
    "/{task_id}/calendar",
    response_model=TaskEnvelope,
    dependencies=[Depends(rate_limited(CALENDAR))],
)
async def unsync_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_user),
    adapter: CalendarSyncAdapter = Depends(get_calendar_adapter),
):
    task = await lifecycle.unsync_task(db, current_user, task_id, adapter)
    return {"task": task, "message": "Task removed from Google Calendar"}
