from datetime import date, datetime

from pydantic import Field, field_validator, model_validator, computed_field

from app.models.tasks import Priority, Status, RecurringPattern
from app.schemas.common import CamelModel
from app.schemas.labels import CategorySummary, TagSummary
from app.utils.sanitization import sanitize_string, sanitize_optional
from app.utils.timeutils import HHMM_PATTERN, normalize_hhmm


# ── Common base for readable/writeable fields ──
class TaskBase(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    due_date: date
    due_time: str | None = Field(None, pattern=HHMM_PATTERN)
    priority: Priority = Priority.MEDIUM
    category_id: int | None = None
    estimated_time: int | None = Field(None, ge=1, le=1440, description="Minutes")
    is_recurring: bool = False
    recurring_pattern: RecurringPattern | None = None

    @field_validator("title", mode="before")
    @classmethod
    def sanitize_title(cls, v):
        return sanitize_string(v)

    @field_validator("description", mode="before")
    @classmethod
    def sanitize_description(cls, v):
        return sanitize_optional(v)

    @field_validator("due_time")
    @classmethod
    def pad_time(cls, v):
        return normalize_hhmm(v) if v else v


class TaskCreate(TaskBase):
    tag_ids: list[int] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_recurrence(self):
        if self.is_recurring and self.recurring_pattern is None:
            raise ValueError("recurringPattern is required for recurring tasks")
        return self


class TaskUpdate(CamelModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    due_date: date | None = None
    due_time: str | None = Field(None, pattern=HHMM_PATTERN)
    priority: Priority | None = None
    status: Status | None = None
    category_id: int | None = None
    estimated_time: int | None = Field(None, ge=1, le=1440)
    tag_ids: list[int] | None = None
    is_recurring: bool | None = None
    recurring_pattern: RecurringPattern | None = None

    @field_validator("title", mode="before")
    @classmethod
    def sanitize_title(cls, v):
        return sanitize_string(v)

    @field_validator("description", mode="before")
    @classmethod
    def sanitize_description(cls, v):
        return sanitize_optional(v)

    @field_validator("due_time")
    @classmethod
    def pad_time(cls, v):
        return normalize_hhmm(v) if v else v

    @model_validator(mode="after")
    def check_not_null(self):
        # These columns are NOT NULL; an explicit null is a client error, not a clear
        for field in ("title", "due_date", "priority", "status", "is_recurring", "tag_ids"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class Task(TaskBase):
    task_id: int
    status: Status
    google_event_id: str | None = None
    completed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    category: CategorySummary | None = None
    tags: list[TagSummary] = []

    @computed_field
    @property
    def synced(self) -> bool:
        return self.google_event_id is not None


class TaskEnvelope(CamelModel):
    task: Task
    message: str | None = None


class TaskList(CamelModel):
    tasks: list[Task]
    total: int
    page: int
    limit: int
    total_pages: int


class TodayStats(CamelModel):
    pending: int
    completed: int
    high_priority: int
    total_estimated_time: int


class TodayTasks(CamelModel):
    tasks: list[Task]
    total: int
    stats: TodayStats


class CalendarSyncResult(CamelModel):
    message: str
    task: Task
    synced: bool
