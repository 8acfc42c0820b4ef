"""
Lifecycle of recurring task templates: create, top-up, update, pause, delete.

Templates are either active or paused; deletion is terminal. The service is
the only writer of ``last_generated_date`` and only ever moves it forward.
"""

import logging
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from sqlalchemy.orm import Session

from ..errors import RecurrenceValidationError
from ..models import RecurringFrequency, RecurringTaskItem, Task
from ..recurrence.expander import DEFAULT_GENERATION_LIMITS, HORIZON_DAYS, effective_limit, expand
from ..recurrence.rules import build_rule, encode_rule
from ..repositories.recurring import RecurringTaskRepository
from ..repositories.tasks import TaskRepository
from ..schemas.recurring import RecurringTaskItemCreate

logger = logging.getLogger(__name__)

# Fields of a template that generated tasks copy, plus schedule settings that
# only affect future generation.
_MUTABLE_FIELDS = {
    "title",
    "description",
    "category_id",
    "priority",
    "daily_section",
    "bonus_section",
    "end_date",
    "due_offset_days",
    "is_active",
}


class RecurringTaskService:
    def __init__(
        self,
        db: Session,
        limits: Mapping[RecurringFrequency, int] = DEFAULT_GENERATION_LIMITS,
        clock: Callable[[], date] = date.today,
    ):
        self.tasks = TaskRepository(db)
        self.items = RecurringTaskRepository(db)
        self.limits = limits
        self.clock = clock

    def list(self, owner_id: str, active_only: bool = False) -> List[RecurringTaskItem]:
        return self.items.list_for_user(owner_id, active_only)

    def get(self, owner_id: str, item_id: str) -> RecurringTaskItem:
        return self.items.get(owner_id, item_id)

    def create(self, owner_id: str, payload: RecurringTaskItemCreate) -> Tuple[RecurringTaskItem, List[Task]]:
        """Persist a template and materialize its first window of instances."""
        rule = build_rule(
            payload.frequency,
            weekly_days=payload.weekly_days,
            monthly_day=payload.monthly_day,
            yearly_month=payload.yearly_month,
            yearly_day=payload.yearly_day,
        )
        if payload.end_date is not None and payload.end_date < payload.start_date:
            raise RecurrenceValidationError("End date must be after start date", field="end_date")

        item = RecurringTaskItem(
            user_id=owner_id,
            title=payload.title,
            description=payload.description,
            category_id=payload.category_id,
            priority=payload.priority,
            daily_section=payload.daily_section,
            bonus_section=payload.bonus_section,
            frequency=rule.frequency,
            rrule=encode_rule(rule),
            start_date=payload.start_date,
            end_date=payload.end_date,
            due_offset_days=payload.due_offset_days,
            tasks_to_generate_ahead=payload.tasks_to_generate_ahead
            or self.limits.get(rule.frequency, DEFAULT_GENERATION_LIMITS[rule.frequency]),
        )
        item = self.items.create(item)
        logger.info("Created recurring item %s (%s) for user %s", item.id, item.rrule, owner_id)

        generated = self._materialize(item, item.start_date, set())
        return self.items.get(owner_id, item.id), generated

    def ensure_tasks_generated(self, owner_id: str, today: Optional[date] = None) -> List[Task]:
        """
        Top up every active template that has fallen behind ``today``.

        Each template is expanded from the day after its high-water mark (never
        before today) against a fresh read of its materialized dates, so
        repeated calls do not duplicate instances.
        """
        today = today or self.clock()
        created: List[Task] = []

        for item in self.items.find_active_due_for_top_up(owner_id, today):
            if item.last_generated_date is None:
                start = item.start_date
            else:
                start = item.last_generated_date + timedelta(days=1)
            start = max(start, today)
            if item.end_date is not None and start > item.end_date:
                continue

            existing = self.tasks.find_recurring_dates(item.id)
            created.extend(self._materialize(item, start, existing))

        if created:
            logger.info("Topped up %d recurring task(s) for user %s", len(created), owner_id)
        return created

    def update(self, owner_id: str, item_id: str, changes: Dict[str, Any]) -> RecurringTaskItem:
        """
        Change template fields. Frequency and rule are fixed at creation.

        Already materialized instances are left as they are; only instances
        generated afterwards see the new values.
        """
        unknown = set(changes) - _MUTABLE_FIELDS
        if unknown:
            raise RecurrenceValidationError(
                f"Cannot change {', '.join(sorted(unknown))} after creation", field=sorted(unknown)[0]
            )

        item = self.items.get(owner_id, item_id)
        end_date = changes.get("end_date", item.end_date)
        if end_date is not None and end_date < item.start_date:
            raise RecurrenceValidationError("End date must be after start date", field="end_date")

        if changes.get("is_active") is False and item.is_active:
            logger.info("Pausing recurring item %s", item_id)
        elif changes.get("is_active") is True and not item.is_active:
            logger.info("Resuming recurring item %s", item_id)
        return self.items.update(item, changes)

    def set_active(self, owner_id: str, item_id: str, active: bool) -> RecurringTaskItem:
        return self.update(owner_id, item_id, {"is_active": active})

    def delete(self, owner_id: str, item_id: str) -> None:
        item = self.items.get(owner_id, item_id)
        self.items.delete(item)
        logger.info("Deleted recurring item %s for user %s", item_id, owner_id)

    def _materialize(self, item: RecurringTaskItem, start: date, existing: Set[date]) -> List[Task]:
        item_id = item.id
        positions = self.tasks.find_positions_by_date(
            item.user_id, start, start + timedelta(days=HORIZON_DAYS)
        )
        result = expand(item, start, existing, self.limits, positions)
        if result.failure is not None or not result.tasks:
            return []

        logger.debug(
            "Materializing %d of at most %d instance(s) for recurring item %s",
            len(result.tasks), effective_limit(item, self.limits), item_id,
        )
        created = self.tasks.create_tasks_batch(result.tasks)
        self.items.update_last_generated_date(item_id, result.last_date)
        return created
