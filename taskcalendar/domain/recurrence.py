"""Recurrence vocabulary and occurrence arithmetic.

A series is described by a frequency, an interval and an optional end
condition. Occurrence ``k`` is always computed from the series start, never by
stepping from occurrence ``k - 1``, so month-end clamping does not drift
(Jan 31 -> Feb 29 -> Mar 31).
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Iterator, Optional

from icalendar import vRecur

from .enums import EndKind, Frequency
from .errors import InvalidRecurrenceRule

_UNIT_NAMES = {
    Frequency.DAILY: "day",
    Frequency.WEEKLY: "week",
    Frequency.MONTHLY: "month",
    Frequency.YEARLY: "year",
}

_RRULE_KEYS = frozenset({"FREQ", "INTERVAL", "COUNT", "UNTIL"})


@dataclass(frozen=True)
class EndCondition:
    kind: EndKind = EndKind.NEVER
    count: Optional[int] = None
    until: Optional[date] = None

    def __post_init__(self) -> None:
        if self.kind == EndKind.AFTER_COUNT:
            if self.count is None or self.count < 1:
                raise InvalidRecurrenceRule(f"after_count needs a count >= 1, got {self.count!r}")
            if self.until is not None:
                raise InvalidRecurrenceRule("after_count cannot carry an until date")
        elif self.kind == EndKind.UNTIL_DATE:
            if self.until is None:
                raise InvalidRecurrenceRule("until_date needs a date")
            if self.count is not None:
                raise InvalidRecurrenceRule("until_date cannot carry a count")
        elif self.count is not None or self.until is not None:
            raise InvalidRecurrenceRule("a never-ending rule cannot carry a count or until date")

    @classmethod
    def never(cls) -> "EndCondition":
        return cls()

    @classmethod
    def after_count(cls, count: int) -> "EndCondition":
        return cls(kind=EndKind.AFTER_COUNT, count=count)

    @classmethod
    def until_date(cls, until: date) -> "EndCondition":
        if isinstance(until, datetime):
            until = until.date()
        return cls(kind=EndKind.UNTIL_DATE, until=until)


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: Frequency
    interval: int = 1
    end: EndCondition = field(default_factory=EndCondition.never)

    def __post_init__(self) -> None:
        try:
            object.__setattr__(self, "frequency", Frequency(self.frequency))
        except ValueError:
            raise InvalidRecurrenceRule(f"Unsupported frequency: {self.frequency!r}") from None
        if isinstance(self.interval, bool) or not isinstance(self.interval, int) or self.interval < 1:
            raise InvalidRecurrenceRule(f"interval must be a positive integer, got {self.interval!r}")

    def validate(self, first_occurrence: date | datetime) -> "RecurrenceRule":
        first = first_occurrence.date() if isinstance(first_occurrence, datetime) else first_occurrence
        if self.end.kind == EndKind.UNTIL_DATE and self.end.until < first:
            raise InvalidRecurrenceRule(
                f"until date {self.end.until.isoformat()} is before the first occurrence {first.isoformat()}"
            )
        return self

    def allows(self, index: int, occurrence: datetime) -> bool:
        if self.end.kind == EndKind.AFTER_COUNT:
            return index < self.end.count
        if self.end.kind == EndKind.UNTIL_DATE:
            return occurrence.date() <= self.end.until
        return True

    def ending_before(self, split_date: date) -> "RecurrenceRule":
        """The same rule, ending the day before ``split_date``."""
        return replace(self, end=EndCondition.until_date(split_date - timedelta(days=1)))

    def remainder_from(self, index: int) -> "RecurrenceRule":
        """The rule for a series that continues this one from occurrence ``index``."""
        if self.end.kind == EndKind.AFTER_COUNT:
            return replace(self, end=EndCondition.after_count(max(self.end.count - index, 1)))
        return self

    def describe(self) -> str:
        unit = _UNIT_NAMES[self.frequency]
        text = f"every {self.interval} {unit}s" if self.interval > 1 else f"every {unit}"
        if self.end.kind == EndKind.AFTER_COUNT:
            text += f", {self.end.count} times"
        elif self.end.kind == EndKind.UNTIL_DATE:
            text += f" until {self.end.until.strftime('%b %d, %Y')}"
        else:
            text += ", forever"
        return text

    def to_rrule(self) -> str:
        recur = vRecur(FREQ=self.frequency.value.upper())
        if self.interval > 1:
            recur["INTERVAL"] = self.interval
        if self.end.kind == EndKind.AFTER_COUNT:
            recur["COUNT"] = self.end.count
        elif self.end.kind == EndKind.UNTIL_DATE:
            recur["UNTIL"] = self.end.until
        return recur.to_ical().decode("utf-8")

    @classmethod
    def from_rrule(cls, text: str) -> "RecurrenceRule":
        body = (text or "").strip().removeprefix("RRULE:")
        parts = [part for part in body.split(";") if part]
        # vRecur skips pairs without "=" instead of rejecting them
        if not parts or any("=" not in part for part in parts):
            raise InvalidRecurrenceRule(f"Malformed RRULE {text!r}")
        try:
            recur = vRecur.from_ical(";".join(parts))
        except ValueError as exc:
            raise InvalidRecurrenceRule(f"Malformed RRULE {text!r}: {exc}") from exc

        keys = {key.upper() for key in recur}
        unsupported = keys - _RRULE_KEYS
        if unsupported:
            raise InvalidRecurrenceRule(f"Unsupported RRULE keys: {', '.join(sorted(unsupported))}")
        if "FREQ" not in keys:
            raise InvalidRecurrenceRule("RRULE is missing FREQ")
        if "COUNT" in keys and "UNTIL" in keys:
            raise InvalidRecurrenceRule("RRULE cannot combine COUNT and UNTIL")

        def single(key: str):
            values = recur[key] if isinstance(recur[key], list) else [recur[key]]
            if len(values) != 1:
                raise InvalidRecurrenceRule(f"RRULE {key} takes a single value, got {len(values)}")
            return values[0]

        if "COUNT" in keys:
            end = EndCondition.after_count(int(single("COUNT")))
        elif "UNTIL" in keys:
            until = single("UNTIL")
            if isinstance(until, datetime):
                until = until.date()
            if not isinstance(until, date):
                raise InvalidRecurrenceRule(f"RRULE UNTIL must be a date, got {until!r}")
            end = EndCondition.until_date(until)
        else:
            end = EndCondition.never()
        interval = int(single("INTERVAL")) if "INTERVAL" in keys else 1
        return cls(frequency=str(single("FREQ")).lower(), interval=interval, end=end)


def occurrence_at(start: datetime, rule: RecurrenceRule, index: int) -> datetime:
    if index < 0:
        raise ValueError("occurrence index must be >= 0")
    steps = index * rule.interval
    if rule.frequency == Frequency.DAILY:
        return start + timedelta(days=steps)
    if rule.frequency == Frequency.WEEKLY:
        return start + timedelta(weeks=steps)
    if rule.frequency == Frequency.MONTHLY:
        return add_months(start, steps)
    return add_months(start, steps * 12)


def index_on_or_after(start: datetime, rule: RecurrenceRule, when: datetime) -> int:
    """First index whose occurrence is at or after ``when``; ignores the end condition."""
    if when <= start:
        return 0
    if rule.frequency == Frequency.DAILY:
        index = (when - start).days // rule.interval
    elif rule.frequency == Frequency.WEEKLY:
        index = (when - start).days // (7 * rule.interval)
    else:
        months = (when.year - start.year) * 12 + (when.month - start.month)
        unit = rule.interval if rule.frequency == Frequency.MONTHLY else rule.interval * 12
        index = months // unit - 1
    index = max(index, 0)
    while occurrence_at(start, rule, index) < when:
        index += 1
    return index


def iter_occurrences(
    start: datetime,
    rule: RecurrenceRule,
    from_index: int = 0,
    before: datetime | None = None,
) -> Iterator[tuple[int, datetime]]:
    """Yield ``(index, occurrence)`` pairs until ``before`` or the end condition stops the series."""
    index = from_index
    while True:
        occurrence = occurrence_at(start, rule, index)
        if before is not None and occurrence >= before:
            return
        if not rule.allows(index, occurrence):
            return
        yield index, occurrence
        index += 1


def last_occurrence(start: datetime, rule: RecurrenceRule) -> datetime | None:
    """The final occurrence of a bounded series, or None for a never-ending one."""
    if rule.end.kind == EndKind.AFTER_COUNT:
        return occurrence_at(start, rule, rule.end.count - 1)
    if rule.end.kind == EndKind.UNTIL_DATE:
        cutoff = datetime.combine(rule.end.until + timedelta(days=1), datetime.min.time())
        index = index_on_or_after(start, rule, cutoff)
        return occurrence_at(start, rule, index - 1) if index > 0 else None
    return None


def add_months(base: datetime, months: int) -> datetime:
    year = base.year + (base.month - 1 + months) // 12
    month = (base.month - 1 + months) % 12 + 1
    day = min(base.day, _days_in_month(year, month))
    return base.replace(year=year, month=month, day=day)


def _days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - timedelta(days=1)).day
