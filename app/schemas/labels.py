from datetime import datetime

from pydantic import Field, field_validator

from app.schemas.common import CamelModel, HEX_COLOR_PATTERN
from app.utils.sanitization import sanitize_string, normalize_color


# ── Shared validation for categories and tags ───────────

class LabelCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=50)
    color: str = Field(..., pattern=HEX_COLOR_PATTERN)

    @field_validator("name", mode="before")
    @classmethod
    def sanitize(cls, v):
        return sanitize_string(v)

    @field_validator("color", mode="before")
    @classmethod
    def normalize(cls, v):
        return normalize_color(v)


class LabelUpdate(CamelModel):
    name: str | None = Field(None, min_length=1, max_length=50)
    color: str | None = Field(None, pattern=HEX_COLOR_PATTERN)

    @field_validator("name", mode="before")
    @classmethod
    def sanitize(cls, v):
        return sanitize_string(v)

    @field_validator("color", mode="before")
    @classmethod
    def normalize(cls, v):
        return normalize_color(v)


# ── Categories ──────────────────────────────────────────

class CategoryCreate(LabelCreate):
    pass


class CategoryUpdate(LabelUpdate):
    pass


class CategorySummary(CamelModel):
    category_id: int
    name: str
    color: str


class Category(CategorySummary):
    created_at: datetime | None = None
    task_count: int = 0


class CategoryList(CamelModel):
    categories: list[Category]


class CategoryEnvelope(CamelModel):
    category: Category
    message: str


# ── Tags ────────────────────────────────────────────────

class TagCreate(LabelCreate):
    pass


class TagUpdate(LabelUpdate):
    pass


class TagSummary(CamelModel):
    tag_id: int
    name: str
    color: str


class Tag(TagSummary):
    created_at: datetime | None = None
    task_count: int = 0


class TagList(CamelModel):
    tags: list[Tag]


class TagEnvelope(CamelModel):
    tag: Tag
    message: str
