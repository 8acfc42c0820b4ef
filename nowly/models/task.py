from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import UniqueConstraint
from datetime import date, datetime
from typing import Optional
from uuid import uuid4
import enum


class TaskPriority(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DailySection(str, enum.Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class BonusSection(str, enum.Enum):
    ESSENTIAL = "essential"
    BONUS = "bonus"


class Task(SQLModel, table=True):
    """A single to-do item.

    Tasks sharing an owner and ``scheduled_date`` (or both unscheduled) form an
    ordering scope; ``position`` is unique and totally ordered inside it.
    A recurring template materializes at most one task per date.
    """
    __tablename__ = "tasks"
    __table_args__ = (
        UniqueConstraint("recurring_item_id", "scheduled_date", name="uq_tasks_recurring_item_date"),
    )

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    user_id: str = Field(index=True, foreign_key="users.id")
    title: str
    description: Optional[str] = None
    scheduled_date: Optional[date] = Field(default=None, index=True)
    due_date: Optional[date] = None
    completed: bool = Field(default=False)
    completed_at: Optional[datetime] = None
    category_id: Optional[str] = Field(default=None, foreign_key="categories.id", ondelete="SET NULL")
    priority: Optional[TaskPriority] = None
    daily_section: Optional[DailySection] = None
    bonus_section: Optional[BonusSection] = None
    position: str = Field(index=True)
    recurring_item_id: Optional[str] = Field(
        default=None, index=True, foreign_key="recurring_task_items.id", ondelete="SET NULL"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    user: Optional["User"] = Relationship(back_populates="tasks")
