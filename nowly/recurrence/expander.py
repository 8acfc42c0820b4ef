"""
Materialize dated task instances from a recurring template.

``expand`` is a pure function of its inputs: it reads no database and keeps no
state, so the service layer decides what is already materialized and what
positions already exist in each date's scope.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Collection, Dict, List, Mapping, Optional, Sequence, Union

from ..errors import RuleDecodeError
from ..models import RecurringFrequency, RecurringTaskItem, Task
from ..ordering import position
from .rules import decode_rule

logger = logging.getLogger(__name__)

HORIZON_DAYS = 365
DEFAULT_LIMIT = 15

# Raw instance counts per frequency, tuned so each covers a comparable span.
DEFAULT_GENERATION_LIMITS: Mapping[RecurringFrequency, int] = {
    RecurringFrequency.DAILY: 15,
    RecurringFrequency.WEEKDAYS: 15,
    RecurringFrequency.WEEKENDS: 15,
    RecurringFrequency.WEEKLY: 8,
    RecurringFrequency.MONTHLY: 6,
    RecurringFrequency.YEARLY: 2,
}


def generation_limits(overrides: Optional[Mapping[Union[str, RecurringFrequency], int]] = None) -> Dict[RecurringFrequency, int]:
    """Default table with per-frequency overrides applied."""
    limits = dict(DEFAULT_GENERATION_LIMITS)
    for frequency, limit in (overrides or {}).items():
        if limit <= 0:
            raise ValueError(f"Generation limit for {frequency} must be positive")
        limits[RecurringFrequency(frequency)] = limit
    return limits


@dataclass(frozen=True)
class GenerationFailure:
    item_id: str
    reason: str


@dataclass
class ExpansionResult:
    tasks: List[Task] = field(default_factory=list)
    last_date: Optional[date] = None
    failure: Optional[GenerationFailure] = None


def effective_limit(item: RecurringTaskItem, limits: Mapping[RecurringFrequency, int]) -> int:
    limit = limits.get(RecurringFrequency(item.frequency), DEFAULT_LIMIT)
    if item.tasks_to_generate_ahead:
        limit = min(limit, item.tasks_to_generate_ahead)
    return limit


def due_date_for(scheduled: date, offset_days: int) -> Optional[date]:
    if offset_days <= 0:
        return None
    return scheduled + timedelta(days=offset_days)


def expand(
    item: RecurringTaskItem,
    generation_start: date,
    existing_dates: Collection[date],
    limits: Mapping[RecurringFrequency, int] = DEFAULT_GENERATION_LIMITS,
    scope_positions: Optional[Mapping[date, Sequence[str]]] = None,
) -> ExpansionResult:
    """
    Build new task instances for ``item`` from ``generation_start`` onwards.

    Occurrences are taken in date order up to min(end_date, start + 365 days),
    skipping dates in ``existing_dates`` and stopping at the generation-ahead
    limit. Each instance is appended after the positions already present in
    its date's scope. A corrupt rule yields an empty result with ``failure``
    set; this function never raises for bad stored data.
    """
    try:
        rule = decode_rule(item.frequency, item.rrule)
    except RuleDecodeError as exc:
        logger.error(
            "Recurring item %s has a corrupt rule %r, skipping generation: %s",
            item.id, item.rrule, exc,
        )
        return ExpansionResult(failure=GenerationFailure(item.id, str(exc)))

    boundary = generation_start + timedelta(days=HORIZON_DAYS)
    if item.end_date is not None and item.end_date < boundary:
        boundary = item.end_date
    window_start = max(generation_start, item.start_date)

    limit = effective_limit(item, limits)
    scope_positions = scope_positions or {}
    result = ExpansionResult()

    for occurrence in rule.occurrences(item.start_date, window_start, boundary):
        if len(result.tasks) >= limit:
            break
        if occurrence in existing_dates:
            continue

        result.tasks.append(
            Task(
                user_id=item.user_id,
                title=item.title,
                description=item.description,
                category_id=item.category_id,
                priority=item.priority,
                daily_section=item.daily_section,
                bonus_section=item.bonus_section,
                scheduled_date=occurrence,
                due_date=due_date_for(occurrence, item.due_offset_days),
                recurring_item_id=item.id,
                position=position.append(scope_positions.get(occurrence, ())),
                completed=False,
                completed_at=None,
            )
        )
        result.last_date = occurrence

    logger.debug(
        "Expanded recurring item %s from %s: %d new instance(s), last %s",
        item.id, generation_start, len(result.tasks), result.last_date,
    )
    return result
