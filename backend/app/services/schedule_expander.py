from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
import logging

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.event import Event, EventType
from app.models.group import Group
from app.models.schedule import GroupSchedule
from app.models.user import User
from app.services.recurrence import EventCandidate, expand_rules, validate_window

logger = logging.getLogger(__name__)


@dataclass
class ConflictRecord:
    candidate: EventCandidate
    conflicting_event_ids: list[str]
    reasons: list[str]


@dataclass
class ExpansionResult:
    created_events: list[Event] = field(default_factory=list)
    conflicts: list[ConflictRecord] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created_events)

    @property
    def conflict_count(self) -> int:
        return len(self.conflicts)


def _conflict_reasons(candidate: EventCandidate, event: Event) -> list[str]:
    reasons: list[str] = []
    if event.teacher_id == candidate.teacher_id:
        reasons.append("teacher")
    if candidate.location and event.location == candidate.location:
        reasons.append("location")
    if candidate.rule_id and event.schedule_id == candidate.rule_id and event.start_at == candidate.start_at:
        reasons.append("duplicate")
    return reasons


def conflict_reasons(candidate: EventCandidate, events: Iterable[Event]) -> list[str]:
    return sorted({reason for event in events for reason in _conflict_reasons(candidate, event)})


def find_overlapping_events(
    db: Session,
    candidate: EventCandidate,
    *,
    exclude_event_id: str | None = None,
) -> list[Event]:
    """Active events whose interval overlaps the candidate and that share its teacher,
    its location or its rule occurrence."""
    shared = [Event.teacher_id == candidate.teacher_id]
    if candidate.location:
        shared.append(Event.location == candidate.location)
    if candidate.rule_id:
        shared.append(and_(Event.schedule_id == candidate.rule_id, Event.start_at == candidate.start_at))
    statement = (
        select(Event)
        .where(
            Event.is_active.is_(True),
            Event.start_at < candidate.end_at,
            Event.end_at > candidate.start_at,
            or_(*shared),
        )
        .order_by(Event.start_at, Event.id)
    )
    if exclude_event_id is not None:
        statement = statement.where(Event.id != exclude_event_id)
    return list(db.execute(statement).scalars())


class ScheduleExpander:
    """Admits generated candidates one at a time.

    Each candidate is checked against active events overlapping its interval
    and committed on its own, so an earlier insert survives a later failure.
    Existing events are never modified.
    """

    def __init__(
        self,
        db: Session,
        *,
        created_by: User,
        title: str,
        description: str | None = None,
        event_type: EventType = EventType.lesson,
        is_attendance_required: bool = False,
    ) -> None:
        self.db = db
        self.created_by = created_by
        self.title = title
        self.description = description
        self.event_type = event_type
        self.is_attendance_required = is_attendance_required

    def find_conflicts(self, candidate: EventCandidate) -> list[Event]:
        return find_overlapping_events(self.db, candidate)

    def _stored_collisions(self, candidate: EventCandidate) -> list[Event]:
        # Rows behind a unique-constraint violation, active or not.
        clauses = [
            and_(
                Event.teacher_id == candidate.teacher_id,
                Event.start_at == candidate.start_at,
                Event.end_at == candidate.end_at,
            )
        ]
        if candidate.location:
            clauses.append(
                and_(
                    Event.location == candidate.location,
                    Event.start_at == candidate.start_at,
                    Event.end_at == candidate.end_at,
                )
            )
        if candidate.rule_id:
            clauses.append(and_(Event.schedule_id == candidate.rule_id, Event.start_at == candidate.start_at))
        return list(self.db.execute(select(Event).where(or_(*clauses))).scalars())

    def _build_event(self, candidate: EventCandidate) -> Event:
        return Event(
            title=self.title,
            description=self.description,
            type=self.event_type,
            start_at=candidate.start_at,
            end_at=candidate.end_at,
            location=candidate.location,
            group_id=candidate.group_id,
            teacher_id=candidate.teacher_id,
            created_by_id=self.created_by.id,
            schedule_id=candidate.rule_id,
            is_active=True,
            is_attendance_required=self.is_attendance_required,
        )

    def admit(self, candidate: EventCandidate) -> Event | ConflictRecord:
        overlapping = self.find_conflicts(candidate)
        if overlapping:
            reasons = conflict_reasons(candidate, overlapping)
            return ConflictRecord(
                candidate=candidate,
                conflicting_event_ids=[event.id for event in overlapping],
                reasons=reasons,
            )

        event = self._build_event(candidate)
        self.db.add(event)
        try:
            self.db.commit()
        except IntegrityError:
            # Another writer claimed the slot between the overlap query and the insert.
            self.db.rollback()
            collisions = self._stored_collisions(candidate)
            reasons = conflict_reasons(candidate, collisions)
            return ConflictRecord(
                candidate=candidate,
                conflicting_event_ids=[item.id for item in collisions],
                reasons=reasons or ["constraint"],
            )
        return event

    def run(self, candidates: Iterable[EventCandidate]) -> ExpansionResult:
        result = ExpansionResult()
        for candidate in candidates:
            outcome = self.admit(candidate)
            if isinstance(outcome, ConflictRecord):
                logger.info(
                    "Schedule candidate %s-%s for group %s conflicts with %s (%s)",
                    candidate.start_at.isoformat(),
                    candidate.end_at.isoformat(),
                    candidate.group_id,
                    ", ".join(outcome.conflicting_event_ids) or "stored row",
                    ", ".join(outcome.reasons),
                )
                result.conflicts.append(outcome)
            else:
                result.created_events.append(outcome)
        return result


def effective_window_end(group: Group, window_end: date) -> date:
    if group.end_date is not None and group.end_date < window_end:
        return group.end_date
    return window_end


def load_active_rules(db: Session, group_id: str) -> list[GroupSchedule]:
    return list(
        db.execute(
            select(GroupSchedule)
            .where(GroupSchedule.group_id == group_id, GroupSchedule.is_active.is_(True))
            .order_by(GroupSchedule.day_of_week, GroupSchedule.start_time, GroupSchedule.id)
        ).scalars()
    )


def generate_group_events(
    db: Session,
    *,
    group: Group,
    rules: Sequence[GroupSchedule],
    window_start: date,
    window_end: date,
    invoking_user: User,
    title: str,
    location: str | None = None,
    description: str | None = None,
    is_attendance_required: bool = False,
) -> ExpansionResult:
    validate_window(window_start, window_end)
    clipped_end = effective_window_end(group, window_end)
    if clipped_end < window_start:
        logger.info("Group %s ends on %s before the requested window; nothing to generate", group.id, clipped_end)
        return ExpansionResult()

    candidates = expand_rules(
        rules,
        window_start,
        clipped_end,
        default_teacher_id=invoking_user.id,
        location=location,
    )
    expander = ScheduleExpander(
        db,
        created_by=invoking_user,
        title=title,
        description=description,
        is_attendance_required=is_attendance_required,
    )
    result = expander.run(candidates)
    logger.info(
        "Generated schedule for group %s over %s..%s: %d created, %d conflicts",
        group.id,
        window_start.isoformat(),
        clipped_end.isoformat(),
        result.created_count,
        result.conflict_count,
    )
    return result
