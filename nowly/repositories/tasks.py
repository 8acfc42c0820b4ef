"""
Task persistence: scope reads, bulk inserts and position writes.

Every method is scoped by the owner id the caller authenticated; nothing here
checks credentials. Writes either commit completely or roll back and raise a
PersistenceError subclass.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import (
    NotFoundError,
    PersistenceError,
    PositionUpdateError,
    PositionUpdateFailure,
    WriteConflictError,
)
from ..models import Task
from ..ordering import position

logger = logging.getLogger(__name__)

# Serialization failure and deadlock.
_CONFLICT_SQLSTATES = {"40001", "40P01"}


@dataclass(frozen=True)
class PositionUpdate:
    task_id: str
    new_position: str
    # When set, the row must still hold this position or the write is a conflict.
    expected_position: Optional[str] = None


def is_write_conflict(exc: DBAPIError) -> bool:
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in _CONFLICT_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


def translate_db_error(exc: SQLAlchemyError, action: str) -> PersistenceError:
    if isinstance(exc, DBAPIError) and is_write_conflict(exc):
        return WriteConflictError(f"Concurrent write while trying to {action}")
    return PersistenceError(f"Failed to {action}: {exc}")


class TaskRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, owner_id: str, task_id: str) -> Task:
        task = self.db.query(Task).filter(Task.id == task_id, Task.user_id == owner_id).first()
        if task is None:
            raise NotFoundError("Task not found")
        return task

    def find_tasks_in_scope(self, owner_id: str, scheduled_date: Optional[date]) -> List[Task]:
        """Tasks of one ordering scope, sorted by position."""
        query = self.db.query(Task).filter(Task.user_id == owner_id)
        if scheduled_date is None:
            query = query.filter(Task.scheduled_date.is_(None))
        else:
            query = query.filter(Task.scheduled_date == scheduled_date)
        return query.order_by(Task.position.asc(), Task.id.asc()).all()

    def next_position(self, owner_id: str, scheduled_date: Optional[date]) -> str:
        """Key that appends a new task to the end of its scope."""
        rows = self.find_tasks_in_scope(owner_id, scheduled_date)
        return position.append(task.position for task in rows)

    def find_positions_by_date(self, owner_id: str, start: date, end: date) -> Dict[date, List[str]]:
        rows = (
            self.db.query(Task.scheduled_date, Task.position)
            .filter(
                Task.user_id == owner_id,
                Task.scheduled_date >= start,
                Task.scheduled_date <= end,
            )
            .all()
        )
        positions: Dict[date, List[str]] = defaultdict(list)
        for scheduled_date, key in rows:
            positions[scheduled_date].append(key)
        return dict(positions)

    def find_recurring_dates(self, item_id: str) -> Set[date]:
        """Dates already materialized for a recurring template."""
        rows = (
            self.db.query(Task.scheduled_date)
            .filter(Task.recurring_item_id == item_id, Task.scheduled_date.isnot(None))
            .all()
        )
        return {scheduled_date for (scheduled_date,) in rows}

    def create(self, task: Task) -> Task:
        try:
            self.db.add(task)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise translate_db_error(exc, "create task") from exc
        self.db.refresh(task)
        return task

    def create_tasks_batch(self, tasks: Sequence[Task]) -> List[Task]:
        """Insert all tasks in one transaction, or none of them."""
        if not tasks:
            return []
        try:
            self.db.add_all(tasks)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            # The recurring (item, date) constraint fired: another writer got there first.
            raise WriteConflictError("Task instances were already materialized concurrently") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise translate_db_error(exc, "insert task batch") from exc

        for task in tasks:
            self.db.refresh(task)
        logger.info("Inserted %d task(s) in batch", len(tasks))
        return list(tasks)

    def update_position(
        self,
        owner_id: str,
        task_id: str,
        new_position: str,
        expected_position: Optional[str] = None,
    ) -> Task:
        """Single-row position write, guarded on the previous position when given."""
        query = self.db.query(Task).filter(Task.id == task_id, Task.user_id == owner_id)
        if expected_position is not None:
            query = query.filter(Task.position == expected_position)
        try:
            updated = query.update(
                {Task.position: new_position, Task.updated_at: datetime.utcnow()},
                synchronize_session=False,
            )
            if updated != 1:
                self.db.rollback()
                if expected_position is not None and self._exists(owner_id, task_id):
                    raise WriteConflictError("Task position changed concurrently")
                raise NotFoundError("Task not found")
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise translate_db_error(exc, "update task position") from exc
        return self.get(owner_id, task_id)

    def atomic_update_positions(self, owner_id: str, updates: Sequence[PositionUpdate]) -> List[Task]:
        """
        Apply every position update in one transaction, or none.

        All rows are locked and checked for existence and ownership before any
        write. A row whose position no longer matches ``expected_position``
        aborts the whole batch with WriteConflictError; missing or foreign rows
        abort it with PositionUpdateError.
        """
        if not updates:
            raise PositionUpdateError([PositionUpdateFailure("", "No updates provided")])

        ids = [update.task_id for update in updates]
        if len(set(ids)) != len(ids):
            raise PositionUpdateError([PositionUpdateFailure("", "Duplicate task ids in batch")])

        try:
            rows = self.db.query(Task).filter(Task.id.in_(ids)).with_for_update().all()
            by_id = {task.id: task for task in rows}

            failures = []
            for update in updates:
                task = by_id.get(update.task_id)
                if task is None:
                    failures.append(PositionUpdateFailure(update.task_id, "Task not found"))
                elif task.user_id != owner_id:
                    failures.append(PositionUpdateFailure(update.task_id, "Task does not belong to user"))
                elif not position.is_valid_key(update.new_position):
                    failures.append(PositionUpdateFailure(update.task_id, "Invalid position key"))
            if failures:
                self.db.rollback()
                raise PositionUpdateError(failures)

            now = datetime.utcnow()
            for update in updates:
                query = self.db.query(Task).filter(Task.id == update.task_id, Task.user_id == owner_id)
                if update.expected_position is not None:
                    query = query.filter(Task.position == update.expected_position)
                updated = query.update(
                    {Task.position: update.new_position, Task.updated_at: now},
                    synchronize_session=False,
                )
                if updated != 1:
                    self.db.rollback()
                    raise WriteConflictError(f"Task {update.task_id} was modified concurrently")

            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise translate_db_error(exc, "update task positions") from exc

        logger.info("Atomically updated %d task position(s) for user %s", len(updates), owner_id)
        return self.db.query(Task).filter(Task.id.in_(ids)).order_by(Task.position.asc()).all()

    def cleanup_recurring_instances(self, item_id: str) -> int:
        """
        Delete incomplete instances of a template and detach completed ones.

        Returns the number of deleted tasks.
        """
        try:
            deleted = (
                self.db.query(Task)
                .filter(Task.recurring_item_id == item_id, Task.completed.is_(False))
                .delete(synchronize_session=False)
            )
            self.db.query(Task).filter(Task.recurring_item_id == item_id).update(
                {Task.recurring_item_id: None}, synchronize_session=False
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise translate_db_error(exc, "clean up recurring instances") from exc
        return deleted

    def reschedule(self, owner_id: str, task_ids: Iterable[str], new_date: date) -> List[Task]:
        """Move tasks to ``new_date``, appending them in their current order."""
        ids = list(dict.fromkeys(task_ids))
        tasks = self.db.query(Task).filter(Task.id.in_(ids), Task.user_id == owner_id).all()
        found = {task.id for task in tasks}
        missing = [task_id for task_id in ids if task_id not in found]
        if missing:
            raise PositionUpdateError(
                [PositionUpdateFailure(task_id, "Task not found") for task_id in missing]
            )

        keys = [task.position for task in self.find_tasks_in_scope(owner_id, new_date) if task.id not in found]
        self._detach_colliding(tasks, new_date)
        now = datetime.utcnow()
        for task in sorted(tasks, key=lambda t: (t.scheduled_date or date.min, t.position)):
            task.position = position.append(keys)
            keys.append(task.position)
            task.scheduled_date = new_date
            task.updated_at = now
        self._commit("reschedule tasks")
        return self.find_tasks_in_scope(owner_id, new_date)

    def update(self, task: Task, changes: Dict[str, Any]) -> Task:
        """Apply field changes. A new scheduled date appends the task to that day."""
        if "scheduled_date" in changes and changes["scheduled_date"] != task.scheduled_date:
            new_date = changes["scheduled_date"]
            task.position = self.next_position(task.user_id, new_date)
            if new_date is not None:
                self._detach_colliding([task], new_date)

        if "completed" in changes and changes["completed"] != task.completed:
            task.completed_at = datetime.utcnow() if changes["completed"] else None

        for field, value in changes.items():
            setattr(task, field, value)
        task.updated_at = datetime.utcnow()

        self._commit("update task")
        self.db.refresh(task)
        return task

    def _detach_colliding(self, tasks: Sequence[Task], new_date: date) -> None:
        """
        Unlink recurring instances that would share ``new_date`` with another
        instance of the same template.

        A detached task keeps its fields and becomes a one-off task. Tasks
        already on ``new_date`` keep their link.
        """
        item_ids = {task.recurring_item_id for task in tasks if task.recurring_item_id}
        if not item_ids:
            return
        moving = {task.id for task in tasks}
        rows = (
            self.db.query(Task.recurring_item_id)
            .filter(
                Task.recurring_item_id.in_(item_ids),
                Task.scheduled_date == new_date,
                Task.id.notin_(moving),
            )
            .all()
        )
        taken = {item_id for (item_id,) in rows}
        for task in sorted(tasks, key=lambda t: t.scheduled_date != new_date):
            if task.recurring_item_id is None:
                continue
            if task.recurring_item_id in taken:
                logger.info(
                    "Detaching task %s from recurring item %s: %s already has an instance",
                    task.id, task.recurring_item_id, new_date,
                )
                task.recurring_item_id = None
            else:
                taken.add(task.recurring_item_id)

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise WriteConflictError(f"Concurrent write while trying to {action}") from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise translate_db_error(exc, action) from exc

    def _exists(self, owner_id: str, task_id: str) -> bool:
        return (
            self.db.query(Task.id).filter(Task.id == task_id, Task.user_id == owner_id).first()
            is not None
        )
