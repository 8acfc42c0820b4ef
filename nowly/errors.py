"""Exception types shared by the services, repositories and routers."""

from dataclasses import dataclass
from typing import List, Optional


class NowlyError(Exception):
    """Base class for application errors."""


class NotFoundError(NowlyError):
    """An owner-scoped lookup found nothing."""


class RecurrenceValidationError(NowlyError, ValueError):
    """Recurrence parameters are malformed and were rejected before expansion."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class RuleDecodeError(NowlyError):
    """A stored recurrence rule encoding could not be decoded."""


class PersistenceError(NowlyError):
    """A persistence operation failed; nothing from it should be treated as applied."""

    retryable = False


class WriteConflictError(PersistenceError):
    """A concurrent writer touched the same rows. The caller may retry."""

    retryable = True
    code = "write_conflict"


@dataclass(frozen=True)
class PositionUpdateFailure:
    task_id: str
    reason: str


class PositionUpdateError(PersistenceError):
    """One or more rows of a batch position update were rejected."""

    def __init__(self, failures: List[PositionUpdateFailure]):
        self.failures = list(failures)
        detail = ", ".join(f"{f.task_id}: {f.reason}" for f in self.failures)
        super().__init__(f"Position update rejected ({detail})")
