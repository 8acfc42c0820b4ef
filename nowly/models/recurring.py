from sqlmodel import SQLModel, Field
from datetime import date, datetime
from typing import Optional
from uuid import uuid4
import enum

from .task import BonusSection, DailySection, TaskPriority


class RecurringFrequency(str, enum.Enum):
    DAILY = "daily"
    WEEKDAYS = "weekdays"
    WEEKENDS = "weekends"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class RecurringTaskItem(SQLModel, table=True):
    """Template that materializes dated tasks on a recurrence rule.

    ``rrule`` is the canonical rule text and never changes after creation.
    ``last_generated_date`` is the high-water mark of materialized dates.
    """
    __tablename__ = "recurring_task_items"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    user_id: str = Field(index=True, foreign_key="users.id")

    # Template fields copied into generated tasks
    title: str
    description: Optional[str] = None
    category_id: Optional[str] = Field(default=None, foreign_key="categories.id", ondelete="SET NULL")
    priority: Optional[TaskPriority] = TaskPriority.MEDIUM
    daily_section: Optional[DailySection] = None
    bonus_section: Optional[BonusSection] = None

    frequency: RecurringFrequency
    rrule: str

    start_date: date
    end_date: Optional[date] = None
    due_offset_days: int = Field(default=0, ge=0)

    last_generated_date: Optional[date] = None
    tasks_to_generate_ahead: int = Field(default=15, gt=0)

    is_active: bool = Field(default=True, index=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
