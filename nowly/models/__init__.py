from .user import User
from .category import Category
from .task import BonusSection, DailySection, Task, TaskPriority
from .recurring import RecurringFrequency, RecurringTaskItem

# Export all models for easy importing
__all__ = [
    "User",
    "Category",
    "Task",
    "TaskPriority",
    "DailySection",
    "BonusSection",
    "RecurringTaskItem",
    "RecurringFrequency",
]
