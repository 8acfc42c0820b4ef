from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import date, datetime
from typing import List, Optional

from ..models.task import BonusSection, DailySection, TaskPriority


class TaskBase(BaseModel):
    """Fields a user may set on a task."""
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    scheduled_date: Optional[date] = None
    due_date: Optional[date] = None
    category_id: Optional[str] = None
    priority: Optional[TaskPriority] = None
    daily_section: Optional[DailySection] = None
    bonus_section: Optional[BonusSection] = None


class TaskCreate(TaskBase):
    """Schema for creating new tasks. Position is assigned by the server."""

    @model_validator(mode="after")
    def _due_after_scheduled(self):
        if self.due_date and self.scheduled_date and self.due_date < self.scheduled_date:
            raise ValueError("Due date must be on or after the scheduled date")
        return self


class TaskUpdate(BaseModel):
    """Schema for updating existing tasks."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)
    scheduled_date: Optional[date] = None
    due_date: Optional[date] = None
    category_id: Optional[str] = None
    priority: Optional[TaskPriority] = None
    daily_section: Optional[DailySection] = None
    bonus_section: Optional[BonusSection] = None
    completed: Optional[bool] = None

    @field_validator("title", "completed")
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("Field cannot be null")
        return value


class TaskComplete(BaseModel):
    completed: bool = True


class Task(TaskBase):
    """Complete task schema with all fields."""
    id: str
    user_id: str
    completed: bool
    completed_at: Optional[datetime] = None
    position: str
    recurring_item_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PositionUpdateRequest(BaseModel):
    position: str = Field(min_length=1)
    expected_position: Optional[str] = None


class ReorderRequest(BaseModel):
    """A drag gesture inside one scope (``scheduled_date`` of None is the unscheduled list)."""
    scheduled_date: Optional[date] = None
    old_index: int = Field(ge=0)
    new_index: int = Field(ge=0)
    task_id: Optional[str] = None


class ReorderResponse(BaseModel):
    rebalanced: bool
    tasks: List[Task]


class RebalanceItem(BaseModel):
    task_id: str
    new_position: str = Field(min_length=1)
    expected_position: Optional[str] = None


class RebalanceRequest(BaseModel):
    updates: List[RebalanceItem] = Field(min_length=1)


class RolloverRequest(BaseModel):
    task_ids: List[str] = Field(min_length=1)
    new_date: date


class OverdueCount(BaseModel):
    count: int
