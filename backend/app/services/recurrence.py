from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
import logging
import re

from app.core.exceptions import ValidationError
from app.models.schedule import GroupSchedule

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


@dataclass(frozen=True)
class EventCandidate:
    rule_id: str | None
    group_id: str
    teacher_id: str
    location: str | None
    start_at: datetime
    end_at: datetime


def parse_time_of_day(value: str | None) -> time | None:
    if not value or not TIME_PATTERN.match(value.strip()):
        return None
    hours, minutes = value.strip().split(":")
    return time(int(hours), int(minutes))


def day_of_week(value: date) -> int:
    """Sunday-based weekday index (Sunday=0 ... Saturday=6)."""
    return value.isoweekday() % 7


def first_occurrence(window_start: date, weekday: int) -> date:
    offset = (weekday - day_of_week(window_start)) % 7
    return window_start + timedelta(days=offset)


def iter_weekly_dates(window_start: date, window_end: date, weekday: int) -> Iterator[date]:
    cursor = first_occurrence(window_start, weekday)
    while cursor <= window_end:
        yield cursor
        cursor += timedelta(days=7)


def validate_window(window_start: date, window_end: date) -> None:
    if window_start > window_end:
        raise ValidationError(
            "Invalid date range",
            details={"startDate": window_start.isoformat(), "endDate": window_end.isoformat()},
        )


def expand_rule(
    rule: GroupSchedule,
    window_start: date,
    window_end: date,
    *,
    default_teacher_id: str,
    location: str | None = None,
) -> list[EventCandidate]:
    if rule.day_of_week is None or not 0 <= rule.day_of_week <= 6:
        logger.warning("Skipping schedule rule %s: invalid day_of_week %r", rule.id, rule.day_of_week)
        return []
    starts = parse_time_of_day(rule.start_time)
    ends = parse_time_of_day(rule.end_time)
    if starts is None or ends is None:
        logger.warning(
            "Skipping schedule rule %s: malformed time range %r-%r",
            rule.id,
            rule.start_time,
            rule.end_time,
        )
        return []
    if ends <= starts:
        logger.warning(
            "Skipping schedule rule %s: end %s is not after start %s",
            rule.id,
            rule.end_time,
            rule.start_time,
        )
        return []

    return [
        EventCandidate(
            rule_id=rule.id,
            group_id=rule.group_id,
            teacher_id=rule.teacher_id or default_teacher_id,
            location=location or rule.location,
            start_at=datetime.combine(occurrence, starts),
            end_at=datetime.combine(occurrence, ends),
        )
        for occurrence in iter_weekly_dates(window_start, window_end, rule.day_of_week)
    ]


def expand_rules(
    rules: Iterable[GroupSchedule],
    window_start: date,
    window_end: date,
    *,
    default_teacher_id: str,
    location: str | None = None,
) -> list[EventCandidate]:
    """Expand active weekly rules into dated candidates.

    Candidates come out in rule order, chronologically within each rule. A rule
    with an unusable time range contributes nothing and does not affect the
    others. A rule without a teacher is attributed to ``default_teacher_id``.
    """
    validate_window(window_start, window_end)
    candidates: list[EventCandidate] = []
    for rule in rules:
        if not rule.is_active:
            continue
        candidates.extend(
            expand_rule(
                rule,
                window_start,
                window_end,
                default_teacher_id=default_teacher_id,
                location=location,
            )
        )
    return candidates
