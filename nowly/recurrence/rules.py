"""
Typed recurrence rules and their canonical iCalendar text form.

A rule is parsed once when a template is loaded and then used as one of the
variants below. The ``FREQ=...`` text is only what gets stored and returned
over the API. Start and end dates live on the template, not in the text, so
the end date can change without touching the rule.
"""

import calendar
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple, Union

from dateutil import rrule as du

from ..errors import RecurrenceValidationError, RuleDecodeError
from ..models.recurring import RecurringFrequency

# date.weekday() numbering: 0 = Monday .. 6 = Sunday
WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")
_CODE_TO_WEEKDAY = {code: index for index, code in enumerate(WEEKDAY_CODES)}
_DU_WEEKDAYS = (du.MO, du.TU, du.WE, du.TH, du.FR, du.SA, du.SU)

WORKWEEK = (0, 1, 2, 3, 4)
WEEKEND = (5, 6)


def _days_text(days: Iterable[int]) -> str:
    return ",".join(WEEKDAY_CODES[day] for day in days)


def _enumerate(freq: int, dtstart: date, window_start: date, window_end: date, **params) -> List[date]:
    if window_end < window_start:
        return []
    rule = du.rrule(freq, dtstart=datetime.combine(dtstart, datetime.min.time()), **params)
    occurrences = rule.between(
        datetime.combine(window_start, datetime.min.time()),
        datetime.combine(window_end, datetime.min.time()),
        inc=True,
    )
    return [occurrence.date() for occurrence in occurrences]


@dataclass(frozen=True)
class DailyRule:
    frequency = RecurringFrequency.DAILY

    def encode(self) -> str:
        return "FREQ=DAILY"

    def occurrences(self, dtstart: date, window_start: date, window_end: date) -> List[date]:
        return _enumerate(du.DAILY, dtstart, window_start, window_end)


@dataclass(frozen=True)
class WeekdaysRule:
    frequency = RecurringFrequency.WEEKDAYS

    def encode(self) -> str:
        return f"FREQ=WEEKLY;BYDAY={_days_text(WORKWEEK)}"

    def occurrences(self, dtstart: date, window_start: date, window_end: date) -> List[date]:
        return _enumerate(
            du.WEEKLY, dtstart, window_start, window_end,
            byweekday=[_DU_WEEKDAYS[day] for day in WORKWEEK],
        )


@dataclass(frozen=True)
class WeekendsRule:
    frequency = RecurringFrequency.WEEKENDS

    def encode(self) -> str:
        return f"FREQ=WEEKLY;BYDAY={_days_text(WEEKEND)}"

    def occurrences(self, dtstart: date, window_start: date, window_end: date) -> List[date]:
        return _enumerate(
            du.WEEKLY, dtstart, window_start, window_end,
            byweekday=[_DU_WEEKDAYS[day] for day in WEEKEND],
        )


@dataclass(frozen=True)
class WeeklyRule:
    days: Tuple[int, ...]
    frequency = RecurringFrequency.WEEKLY

    def encode(self) -> str:
        return f"FREQ=WEEKLY;BYDAY={_days_text(self.days)}"

    def occurrences(self, dtstart: date, window_start: date, window_end: date) -> List[date]:
        return _enumerate(
            du.WEEKLY, dtstart, window_start, window_end,
            byweekday=[_DU_WEEKDAYS[day] for day in self.days],
        )


@dataclass(frozen=True)
class MonthlyRule:
    day: int
    frequency = RecurringFrequency.MONTHLY

    def encode(self) -> str:
        return f"FREQ=MONTHLY;BYMONTHDAY={self.day}"

    def occurrences(self, dtstart: date, window_start: date, window_end: date) -> List[date]:
        # Months without this day are skipped, as iCalendar does.
        return _enumerate(du.MONTHLY, dtstart, window_start, window_end, bymonthday=self.day)


@dataclass(frozen=True)
class YearlyRule:
    month: int
    day: int
    frequency = RecurringFrequency.YEARLY

    def encode(self) -> str:
        return f"FREQ=YEARLY;BYMONTH={self.month};BYMONTHDAY={self.day}"

    def occurrences(self, dtstart: date, window_start: date, window_end: date) -> List[date]:
        return _enumerate(
            du.YEARLY, dtstart, window_start, window_end,
            bymonth=self.month, bymonthday=self.day,
        )


RecurrenceRule = Union[DailyRule, WeekdaysRule, WeekendsRule, WeeklyRule, MonthlyRule, YearlyRule]


def _check_month_day(month: int, day: int) -> None:
    # Leap years allow Feb 29, so check against 2000.
    if not 1 <= month <= 12:
        raise RecurrenceValidationError("Month must be between 1 and 12", field="yearly_month")
    if not 1 <= day <= calendar.monthrange(2000, month)[1]:
        raise RecurrenceValidationError(
            f"Day {day} does not exist in month {month}", field="yearly_day"
        )


def build_rule(
    frequency: Union[RecurringFrequency, str],
    weekly_days: Optional[Iterable[int]] = None,
    monthly_day: Optional[int] = None,
    yearly_month: Optional[int] = None,
    yearly_day: Optional[int] = None,
) -> RecurrenceRule:
    """Validate user-supplied recurrence parameters and build the rule."""
    try:
        frequency = RecurringFrequency(frequency)
    except ValueError:
        raise RecurrenceValidationError(f"Unknown frequency: {frequency!r}", field="frequency")

    if frequency is RecurringFrequency.DAILY:
        return DailyRule()
    if frequency is RecurringFrequency.WEEKDAYS:
        return WeekdaysRule()
    if frequency is RecurringFrequency.WEEKENDS:
        return WeekendsRule()

    if frequency is RecurringFrequency.WEEKLY:
        days = sorted(set(weekly_days or ()))
        if not days:
            raise RecurrenceValidationError(
                "Weekly frequency requires at least one day selected", field="weekly_days"
            )
        if any(not 0 <= day <= 6 for day in days):
            raise RecurrenceValidationError("Weekdays must be between 0 and 6", field="weekly_days")
        return WeeklyRule(tuple(days))

    if frequency is RecurringFrequency.MONTHLY:
        if monthly_day is None:
            raise RecurrenceValidationError("Monthly frequency requires day of month", field="monthly_day")
        if not 1 <= monthly_day <= 31:
            raise RecurrenceValidationError("Day of month must be between 1 and 31", field="monthly_day")
        return MonthlyRule(monthly_day)

    if yearly_month is None or yearly_day is None:
        raise RecurrenceValidationError("Yearly frequency requires month and day", field="yearly_month")
    _check_month_day(yearly_month, yearly_day)
    return YearlyRule(yearly_month, yearly_day)


def encode_rule(rule: RecurrenceRule) -> str:
    return rule.encode()


def _parse_parts(text: str) -> Dict[str, str]:
    body = text.strip()
    if body.upper().startswith("RRULE:"):
        body = body[len("RRULE:"):]
    if not body:
        raise RuleDecodeError("Empty recurrence rule")

    parts = {}
    for chunk in body.split(";"):
        name, sep, value = chunk.partition("=")
        if not sep or not name or not value:
            raise RuleDecodeError(f"Malformed rule component: {chunk!r}")
        parts[name.strip().upper()] = value.strip().upper()
    return parts


def _parse_int(parts: Dict[str, str], name: str) -> int:
    try:
        return int(parts[name])
    except (KeyError, ValueError):
        raise RuleDecodeError(f"Missing or invalid {name}")


def decode_rule(frequency: Union[RecurringFrequency, str], text: str) -> RecurrenceRule:
    """
    Parse stored rule text back into its variant.

    Raises RuleDecodeError when the text is corrupt or does not match the
    template's frequency tag.
    """
    if not isinstance(text, str):
        raise RuleDecodeError("Recurrence rule must be text")
    try:
        frequency = RecurringFrequency(frequency)
    except ValueError:
        raise RuleDecodeError(f"Unknown frequency tag: {frequency!r}")

    parts = _parse_parts(text)
    freq = parts.get("FREQ")

    days: Tuple[int, ...] = ()
    if "BYDAY" in parts:
        try:
            days = tuple(sorted({_CODE_TO_WEEKDAY[code] for code in parts["BYDAY"].split(",")}))
        except KeyError:
            raise RuleDecodeError(f"Invalid BYDAY: {parts['BYDAY']!r}")

    try:
        if frequency is RecurringFrequency.DAILY and freq == "DAILY":
            rule = DailyRule()
        elif frequency is RecurringFrequency.WEEKDAYS and freq == "WEEKLY" and days == WORKWEEK:
            rule = WeekdaysRule()
        elif frequency is RecurringFrequency.WEEKENDS and freq == "WEEKLY" and days == WEEKEND:
            rule = WeekendsRule()
        elif frequency is RecurringFrequency.WEEKLY and freq == "WEEKLY":
            rule = build_rule(frequency, weekly_days=days)
        elif frequency is RecurringFrequency.MONTHLY and freq == "MONTHLY":
            rule = build_rule(frequency, monthly_day=_parse_int(parts, "BYMONTHDAY"))
        elif frequency is RecurringFrequency.YEARLY and freq == "YEARLY":
            rule = build_rule(
                frequency,
                yearly_month=_parse_int(parts, "BYMONTH"),
                yearly_day=_parse_int(parts, "BYMONTHDAY"),
            )
        else:
            raise RuleDecodeError(f"Rule {text!r} does not describe a {frequency.value} recurrence")
    except RecurrenceValidationError as exc:
        raise RuleDecodeError(str(exc)) from exc

    return rule
