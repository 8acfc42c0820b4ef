import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import NowlyError, PersistenceError
from ..models import RecurringFrequency, Task as TaskModel, User
from ..ordering import position
from ..repositories.tasks import PositionUpdate, TaskRepository
from ..schemas.task import (
    OverdueCount,
    PositionUpdateRequest,
    RebalanceRequest,
    ReorderRequest,
    ReorderResponse,
    RolloverRequest,
    Task as TaskSchema,
    TaskComplete,
    TaskCreate,
    TaskUpdate,
)
from ..services.recurring import RecurringTaskService
from ..services.reorder import ReorderService
from .auth import get_current_user
from .deps import get_generation_limits, http_error

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_update_data(task_update: TaskUpdate) -> dict:
    return task_update.model_dump(exclude_unset=True)


def _top_up_recurring(db: Session, user: User, limits: Dict[RecurringFrequency, int]) -> None:
    """Materialize recurring instances that fell behind; a failure here must not break the read."""
    try:
        RecurringTaskService(db, limits).ensure_tasks_generated(user.id)
    except PersistenceError as exc:
        logger.warning("Recurring top-up for user %s skipped: %s", user.id, exc)


@router.get("", response_model=List[TaskSchema])
def get_tasks(
    scheduled_date: Optional[date] = Query(default=None, alias="date"),
    unscheduled: bool = False,
    status: str = "all",
    skip: int = 0,
    limit: int = 100,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    limits: Dict[RecurringFrequency, int] = Depends(get_generation_limits),
):
    """List tasks in position order, optionally for one day or the unscheduled list."""
    if scheduled_date is not None and unscheduled:
        raise HTTPException(status_code=422, detail="Use either date or unscheduled, not both")

    _top_up_recurring(db, current_user, limits)

    query = db.query(TaskModel).filter(TaskModel.user_id == current_user.id)

    if unscheduled:
        query = query.filter(TaskModel.scheduled_date.is_(None))
    elif scheduled_date is not None:
        query = query.filter(TaskModel.scheduled_date == scheduled_date)

    if status == "completed":
        query = query.filter(TaskModel.completed.is_(True))
    elif status == "pending":
        query = query.filter(TaskModel.completed.is_(False))
    elif status != "all":
        raise HTTPException(status_code=422, detail="Invalid status filter")

    query = query.order_by(TaskModel.scheduled_date.asc(), TaskModel.position.asc(), TaskModel.id.asc())
    return query.offset(skip).limit(limit).all()


@router.post("", response_model=TaskSchema, status_code=status.HTTP_201_CREATED)
def create_task(
    task: TaskCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a task at the end of its scope."""
    repo = TaskRepository(db)
    db_task = TaskModel(
        user_id=current_user.id,
        position=repo.next_position(current_user.id, task.scheduled_date),
        **task.model_dump(),
    )
    try:
        return repo.create(db_task)
    except NowlyError as exc:
        raise http_error(exc) from exc


@router.get("/overdue/count", response_model=OverdueCount)
def get_overdue_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Incomplete tasks that are past due or were scheduled before today."""
    today = date.today()
    count = (
        db.query(TaskModel)
        .filter(
            TaskModel.user_id == current_user.id,
            TaskModel.completed.is_(False),
            or_(TaskModel.due_date < today, TaskModel.scheduled_date < today),
        )
        .count()
    )
    return OverdueCount(count=count)


@router.post("/reorder", response_model=ReorderResponse)
def reorder_tasks(
    payload: ReorderRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Apply a drag gesture within one day (or the unscheduled list)."""
    try:
        result = ReorderService(db).move(
            current_user.id,
            payload.scheduled_date,
            payload.old_index,
            payload.new_index,
            expected_task_id=payload.task_id,
        )
    except IndexError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except NowlyError as exc:
        raise http_error(exc) from exc
    return {"rebalanced": result.plan.rebalanced, "tasks": result.tasks}


@router.post("/rebalance", response_model=List[TaskSchema])
def rebalance_tasks(
    payload: RebalanceRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Write a batch of positions atomically: all of them or none."""
    updates = [
        PositionUpdate(item.task_id, item.new_position, expected_position=item.expected_position)
        for item in payload.updates
    ]
    try:
        return TaskRepository(db).atomic_update_positions(current_user.id, updates)
    except NowlyError as exc:
        raise http_error(exc) from exc


@router.post("/rollover", response_model=List[TaskSchema])
def rollover_tasks(
    payload: RolloverRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Move tasks to another day, after the tasks already there."""
    try:
        tasks = TaskRepository(db).reschedule(current_user.id, payload.task_ids, payload.new_date)
    except NowlyError as exc:
        raise http_error(exc) from exc
    logger.info("Rolled %d task(s) over to %s for user %s", len(payload.task_ids), payload.new_date, current_user.id)
    return tasks


@router.get("/{task_id}", response_model=TaskSchema)
def get_task(
    task_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    task = db.query(TaskModel).filter(TaskModel.id == task_id, TaskModel.user_id == current_user.id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.put("/{task_id}", response_model=TaskSchema)
def update_task(
    task_id: str,
    task_update: TaskUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Update a task. Moving it to another day appends it to that day's list."""
    task = db.query(TaskModel).filter(TaskModel.id == task_id, TaskModel.user_id == current_user.id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")

    update_data = _get_update_data(task_update)
    scheduled_date = update_data.get("scheduled_date", task.scheduled_date)
    due_date = update_data.get("due_date", task.due_date)
    if scheduled_date and due_date and due_date < scheduled_date:
        raise HTTPException(status_code=422, detail="Due date must be on or after the scheduled date")

    try:
        return TaskRepository(db).update(task, update_data)
    except NowlyError as exc:
        raise http_error(exc) from exc


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    task = db.query(TaskModel).filter(TaskModel.id == task_id, TaskModel.user_id == current_user.id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")

    db.delete(task)
    db.commit()


@router.patch("/{task_id}/complete", response_model=TaskSchema)
def mark_task_complete(
    task_id: str,
    payload: Optional[TaskComplete] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    task = db.query(TaskModel).filter(TaskModel.id == task_id, TaskModel.user_id == current_user.id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")

    task.completed = True if payload is None else payload.completed
    task.completed_at = datetime.utcnow() if task.completed else None
    task.updated_at = datetime.utcnow()

    db.commit()
    db.refresh(task)
    return task


@router.patch("/{task_id}/position", response_model=TaskSchema)
def update_task_position(
    task_id: str,
    payload: PositionUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Set one task's position key, optionally guarded on the key the caller last saw."""
    if not position.is_valid_key(payload.position):
        raise HTTPException(status_code=422, detail="Invalid position key")
    try:
        return TaskRepository(db).update_position(
            current_user.id, task_id, payload.position, payload.expected_position
        )
    except NowlyError as exc:
        raise http_error(exc) from exc
