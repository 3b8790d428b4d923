import enum

from sqlalchemy import Column, Integer, String, Text, Date, DateTime, ForeignKey, Boolean, UniqueConstraint, Enum
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.timeutils import utcnow


class Priority(str, enum.Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Status(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class RecurringPattern(str, enum.Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="_category_user_name_uc"),
    )

    category_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    color = Column(String(7), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    tasks = relationship("Task", back_populates="category", passive_deletes=True)


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = (
        UniqueConstraint("user_id", "name", name="_tag_user_name_uc"),
    )

    tag_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    color = Column(String(7), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    task_links = relationship("TaskTag", back_populates="tag", passive_deletes=True)


class TaskTag(Base):
    __tablename__ = "task_tags"

    task_id = Column(Integer, ForeignKey("tasks.task_id", ondelete="CASCADE"), primary_key=True)
    tag_id = Column(Integer, ForeignKey("tags.tag_id", ondelete="CASCADE"), primary_key=True)

    task = relationship("Task", back_populates="tag_links")
    tag = relationship("Tag", back_populates="task_links")


class Task(Base):
    __tablename__ = "tasks"

    task_id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(Date, nullable=False, index=True)
    due_time = Column(String(5), nullable=True)  # HH:MM
    priority = Column(Enum(Priority, native_enum=False, length=20), default=Priority.MEDIUM, nullable=False)
    status = Column(Enum(Status, native_enum=False, length=20), default=Status.PENDING, nullable=False)
    is_recurring = Column(Boolean, default=False, nullable=False)
    recurring_pattern = Column(Enum(RecurringPattern, native_enum=False, length=20), nullable=True)
    estimated_time = Column(Integer, nullable=True)  # minutes
    category_id = Column(Integer, ForeignKey("categories.category_id", ondelete="SET NULL"), nullable=True)
    google_event_id = Column(String(1024), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    user = relationship("User", back_populates="tasks")
    category = relationship("Category", back_populates="tasks")
    tag_links = relationship("TaskTag", back_populates="task", cascade="all, delete-orphan", passive_deletes=True)
    tags = relationship("Tag", secondary="task_tags", viewonly=True, order_by="Tag.name")
