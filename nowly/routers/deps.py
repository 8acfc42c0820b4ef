import logging
from typing import Dict

from fastapi import HTTPException, status

from ..config import GENERATION_LIMIT_OVERRIDES
from ..errors import (
    NotFoundError,
    NowlyError,
    PersistenceError,
    PositionUpdateError,
    RecurrenceValidationError,
    WriteConflictError,
)
from ..models import RecurringFrequency
from ..recurrence.expander import generation_limits

logger = logging.getLogger(__name__)

_MISSING_REASONS = {"Task not found", "Task does not belong to user"}


def get_generation_limits() -> Dict[RecurringFrequency, int]:
    return generation_limits(GENERATION_LIMIT_OVERRIDES)


def http_error(exc: NowlyError) -> HTTPException:
    """Map an application error onto the response the API returns for it."""
    if isinstance(exc, RecurrenceValidationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "field": exc.field},
        )
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, WriteConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"code": exc.code, "message": str(exc), "retryable": exc.retryable},
        )
    if isinstance(exc, PositionUpdateError):
        missing = any(f.reason in _MISSING_REASONS for f in exc.failures)
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND if missing else status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "message": "Position update rejected",
                "failures": [{"task_id": f.task_id, "reason": f.reason} for f in exc.failures],
            },
        )
    if isinstance(exc, PersistenceError):
        logger.error("Persistence failure: %s", exc)
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Database error")
    logger.exception("Unhandled application error")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
