from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import date, datetime
from typing import List, Optional

from ..models.recurring import RecurringFrequency
from ..models.task import BonusSection, DailySection, TaskPriority
from .task import Task


class RecurringTaskItemCreate(BaseModel):
    """Template plus the frequency-specific settings used to build its rule.

    ``weekly_days`` uses 0 = Monday .. 6 = Sunday.
    """
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    category_id: Optional[str] = None
    priority: Optional[TaskPriority] = TaskPriority.MEDIUM
    daily_section: Optional[DailySection] = None
    bonus_section: Optional[BonusSection] = None

    frequency: RecurringFrequency
    start_date: date
    end_date: Optional[date] = None
    due_offset_days: int = Field(default=0, ge=0, le=365)
    tasks_to_generate_ahead: Optional[int] = Field(default=None, ge=1, le=30)

    weekly_days: Optional[List[int]] = None
    monthly_day: Optional[int] = None
    yearly_month: Optional[int] = None
    yearly_day: Optional[int] = None

    @model_validator(mode="after")
    def _end_after_start(self):
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date must be after start date")
        return self


class RecurringTaskItemUpdate(BaseModel):
    """Frequency and rule cannot be changed; create a new item instead."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=1000)
    category_id: Optional[str] = None
    priority: Optional[TaskPriority] = None
    daily_section: Optional[DailySection] = None
    bonus_section: Optional[BonusSection] = None
    end_date: Optional[date] = None
    due_offset_days: Optional[int] = Field(default=None, ge=0, le=365)
    is_active: Optional[bool] = None

    @field_validator("title", "due_offset_days", "is_active")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("Field cannot be null")
        return value

    class Config:
        extra = "forbid"


class RecurringActiveUpdate(BaseModel):
    is_active: bool


class RecurringTaskItem(BaseModel):
    id: str
    user_id: str
    title: str
    description: Optional[str] = None
    category_id: Optional[str] = None
    priority: Optional[TaskPriority] = None
    daily_section: Optional[DailySection] = None
    bonus_section: Optional[BonusSection] = None
    frequency: RecurringFrequency
    rrule: str
    start_date: date
    end_date: Optional[date] = None
    due_offset_days: int
    last_generated_date: Optional[date] = None
    tasks_to_generate_ahead: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RecurringTaskItemCreated(BaseModel):
    recurring_item: RecurringTaskItem
    generated_tasks: List[Task]


class EnsureGeneratedResponse(BaseModel):
    generated_tasks: List[Task]
