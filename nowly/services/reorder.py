"""
Drag-and-drop reordering within one ordering scope.

A move normally rewrites one row: the moved task gets a key between its new
neighbours. When no key fits there the whole scope is rebalanced and written
as one all-or-nothing batch. Conflicts are reported to the caller, never
retried here.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ..errors import NotFoundError, PersistenceError, WriteConflictError
from ..models import Task
from ..ordering import position
from ..repositories.tasks import PositionUpdate, TaskRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReorderPlan:
    task_id: str
    old_index: int
    new_index: int
    updates: Tuple[PositionUpdate, ...] = ()
    rebalanced: bool = False


@dataclass
class ReorderResult:
    plan: ReorderPlan
    tasks: List[Task] = field(default_factory=list)


@dataclass
class OrderedItem:
    id: str
    position: str


class OptimisticOrder:
    """
    Caller-side view of one scope, updated before the server confirms.

    ``apply`` returns a snapshot taken just before the change; passing it to
    ``rollback`` restores the last known-good order.
    """

    def __init__(self, items: Sequence[object]):
        self.items = [OrderedItem(item.id, item.position) for item in items]
        self._sort()

    def _sort(self) -> None:
        self.items.sort(key=lambda item: (item.position, item.id))

    def ids(self) -> List[str]:
        return [item.id for item in self.items]

    def apply(self, plan: ReorderPlan) -> List[OrderedItem]:
        snapshot = [OrderedItem(item.id, item.position) for item in self.items]
        new_positions = {update.task_id: update.new_position for update in plan.updates}
        for item in self.items:
            if item.id in new_positions:
                item.position = new_positions[item.id]
        self._sort()
        return snapshot

    def rollback(self, snapshot: List[OrderedItem]) -> None:
        self.items = [OrderedItem(item.id, item.position) for item in snapshot]
        self._sort()


def _sorted_scope(tasks: Sequence[object]) -> List[object]:
    return sorted(tasks, key=lambda task: (task.position, task.id))


def plan_move(tasks: Sequence[object], old_index: int, new_index: int) -> ReorderPlan:
    """
    Work out the position writes for moving the task at ``old_index`` to
    ``new_index`` in the position-sorted scope.

    Moving down places the task after its new neighbour, moving up places it
    before. Pure: reads nothing and writes nothing.
    """
    ordered = _sorted_scope(tasks)
    count = len(ordered)
    if not (0 <= old_index < count and 0 <= new_index < count):
        raise IndexError(f"Move {old_index} -> {new_index} is outside a scope of {count} task(s)")

    moving = ordered[old_index]
    if old_index == new_index:
        return ReorderPlan(moving.id, old_index, new_index)

    if old_index < new_index:
        lower = ordered[new_index].position
        upper = ordered[new_index + 1].position if new_index + 1 < count else None
    else:
        lower = ordered[new_index - 1].position if new_index > 0 else None
        upper = ordered[new_index].position

    try:
        allocation = position.between(lower, upper)
    except position.InvalidPositionError as exc:
        # Malformed or duplicate keys in the scope; rebalancing repairs them.
        logger.warning("Scope has unusable neighbour keys (%s), rebalancing", exc)
        allocation = position.Exhausted(lower, upper, str(exc))

    if not isinstance(allocation, position.Exhausted):
        update = PositionUpdate(moving.id, allocation, expected_position=moving.position)
        return ReorderPlan(moving.id, old_index, new_index, (update,))

    reordered = list(ordered)
    reordered.insert(new_index, reordered.pop(old_index))
    keys = position.rebalance(len(reordered))
    updates = tuple(
        PositionUpdate(task.id, key, expected_position=task.position)
        for task, key in zip(reordered, keys)
    )
    logger.info("Position space exhausted (%s), rebalancing %d task(s)", allocation.reason, len(updates))
    return ReorderPlan(moving.id, old_index, new_index, updates, rebalanced=True)


class ReorderService:
    def __init__(self, db: Session):
        self.tasks = TaskRepository(db)

    def submit(self, owner_id: str, plan: ReorderPlan) -> List[Task]:
        """Persist a plan: one guarded row update, or one atomic batch."""
        if not plan.updates:
            return []
        if plan.rebalanced:
            return self.tasks.atomic_update_positions(owner_id, plan.updates)
        update = plan.updates[0]
        return [
            self.tasks.update_position(
                owner_id, update.task_id, update.new_position, update.expected_position
            )
        ]

    def move(
        self,
        owner_id: str,
        scheduled_date: Optional[date],
        old_index: int,
        new_index: int,
        expected_task_id: Optional[str] = None,
    ) -> ReorderResult:
        """
        Apply a drag gesture to the stored scope.

        ``expected_task_id`` is the task the caller saw at ``old_index``; if the
        stored scope disagrees the caller's view is stale and the move is
        rejected as a conflict.
        """
        scope = _sorted_scope(self.tasks.find_tasks_in_scope(owner_id, scheduled_date))
        if expected_task_id is not None:
            if not 0 <= old_index < len(scope) or scope[old_index].id != expected_task_id:
                raise WriteConflictError("Task order changed since it was loaded")

        plan = plan_move(scope, old_index, new_index)
        self.submit(owner_id, plan)
        logger.info(
            "Moved task %s from %d to %d on %s%s",
            plan.task_id, old_index, new_index, scheduled_date or "unscheduled",
            " (rebalanced)" if plan.rebalanced else "",
        )
        return ReorderResult(plan, self.tasks.find_tasks_in_scope(owner_id, scheduled_date))

    def move_optimistic(
        self,
        order: OptimisticOrder,
        owner_id: str,
        old_index: int,
        new_index: int,
    ) -> List[Task]:
        """
        Update ``order`` immediately, then persist. On any failure the order is
        rolled back to the snapshot taken just before the change and the error
        is re-raised.
        """
        plan = plan_move(order.items, old_index, new_index)
        snapshot = order.apply(plan)
        try:
            return self.submit(owner_id, plan)
        except (PersistenceError, NotFoundError) as exc:
            order.rollback(snapshot)
            logger.warning("Reorder of task %s failed, restored previous order: %s", plan.task_id, exc)
            raise
