import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import NowlyError
from ..models import RecurringFrequency, User
from ..repositories.tasks import TaskRepository
from ..schemas.recurring import (
    EnsureGeneratedResponse,
    RecurringActiveUpdate,
    RecurringTaskItem as RecurringTaskItemSchema,
    RecurringTaskItemCreate,
    RecurringTaskItemCreated,
    RecurringTaskItemUpdate,
)
from ..services.recurring import RecurringTaskService
from .auth import get_current_user
from .deps import get_generation_limits, http_error

logger = logging.getLogger(__name__)

router = APIRouter()


def get_service(
    db: Session = Depends(get_db),
    limits: Dict[RecurringFrequency, int] = Depends(get_generation_limits),
) -> RecurringTaskService:
    return RecurringTaskService(db, limits)


@router.get("", response_model=List[RecurringTaskItemSchema])
def list_recurring_items(
    active_only: bool = False,
    current_user: User = Depends(get_current_user),
    service: RecurringTaskService = Depends(get_service),
):
    return service.list(current_user.id, active_only)


@router.post("", response_model=RecurringTaskItemCreated, status_code=status.HTTP_201_CREATED)
def create_recurring_item(
    payload: RecurringTaskItemCreate,
    current_user: User = Depends(get_current_user),
    service: RecurringTaskService = Depends(get_service),
):
    """Create a template and return it with the instances generated for it."""
    try:
        item, generated = service.create(current_user.id, payload)
    except NowlyError as exc:
        raise http_error(exc) from exc
    return {"recurring_item": item, "generated_tasks": generated}


@router.post("/ensure-generated", response_model=EnsureGeneratedResponse)
def ensure_generated(
    current_user: User = Depends(get_current_user),
    service: RecurringTaskService = Depends(get_service),
):
    try:
        generated = service.ensure_tasks_generated(current_user.id)
    except NowlyError as exc:
        raise http_error(exc) from exc
    return {"generated_tasks": generated}


@router.get("/{item_id}", response_model=RecurringTaskItemSchema)
def get_recurring_item(
    item_id: str,
    current_user: User = Depends(get_current_user),
    service: RecurringTaskService = Depends(get_service),
):
    try:
        return service.get(current_user.id, item_id)
    except NowlyError as exc:
        raise http_error(exc) from exc


@router.put("/{item_id}", response_model=RecurringTaskItemSchema)
def update_recurring_item(
    item_id: str,
    payload: RecurringTaskItemUpdate,
    current_user: User = Depends(get_current_user),
    service: RecurringTaskService = Depends(get_service),
):
    """Only instances generated after the change pick it up."""
    try:
        return service.update(current_user.id, item_id, payload.model_dump(exclude_unset=True))
    except NowlyError as exc:
        raise http_error(exc) from exc


@router.patch("/{item_id}/active", response_model=RecurringTaskItemSchema)
def set_recurring_item_active(
    item_id: str,
    payload: RecurringActiveUpdate,
    current_user: User = Depends(get_current_user),
    service: RecurringTaskService = Depends(get_service),
):
    try:
        return service.set_active(current_user.id, item_id, payload.is_active)
    except NowlyError as exc:
        raise http_error(exc) from exc


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_recurring_item(
    item_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: RecurringTaskService = Depends(get_service),
):
    """Delete a template with its incomplete instances. Completed ones are kept."""
    try:
        item = service.get(current_user.id, item_id)
        deleted = TaskRepository(db).cleanup_recurring_instances(item.id)
        service.delete(current_user.id, item_id)
    except NowlyError as exc:
        raise http_error(exc) from exc
    logger.info("Removed %d pending instance(s) of recurring item %s", deleted, item_id)
