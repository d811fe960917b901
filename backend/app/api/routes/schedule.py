from __future__ import annotations

from datetime import date, datetime, time
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.deps import get_db, require_permissions
from app.core.config import get_settings
from app.core.exceptions import ConflictError, ResourceNotFoundError
from app.core.permissions import Capability
from app.models.event import Event
from app.models.group import Group, GroupTeacher, GroupTeacherRole
from app.models.schedule import GroupSchedule
from app.models.user import User
from app.schemas.event import EventOut, EventUpdate
from app.schemas.schedule import (
    BulkDeletePreview,
    BulkDeleteRequest,
    BulkDeleteResult,
    BulkUpdateRequest,
    BulkUpdateResponse,
    ConflictOut,
    DeletePreviewSummary,
    GenerateAdvancedRequest,
    GenerateAdvancedResponse,
    GenerateAdvancedSummary,
    GenerateScheduleRequest,
    GenerateScheduleResponse,
    GenerationPeriod,
    GroupScheduleOut,
    ScheduleEntryCreate,
    ScheduleEntryOut,
    ScheduleEntryUpdate,
)
from app.services.audit import log_activity
from app.services.notifications import notify_group_schedule_generated
from app.services.recurrence import EventCandidate, parse_time_of_day
from app.services.schedule_expander import (
    ConflictRecord,
    conflict_reasons,
    find_overlapping_events,
    generate_group_events,
    load_active_rules,
)

settings = get_settings()
router = APIRouter()
logger = logging.getLogger(__name__)


def _get_group_or_404(db: Session, group_id: str) -> Group:
    group = db.get(Group, group_id)
    if group is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Group not found")
    return group


def _get_entry_or_404(db: Session, group_id: str, entry_id: str) -> GroupSchedule:
    entry = db.get(GroupSchedule, entry_id)
    if entry is None or entry.group_id != group_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Schedule entry not found")
    return entry


def _ensure_teacher_exists(db: Session, teacher_id: str | None) -> None:
    if teacher_id is not None and db.get(User, teacher_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Teacher not found")


def _detach_events(db: Session, rule_ids: list[str]) -> None:
    if rule_ids:
        db.execute(update(Event).where(Event.schedule_id.in_(rule_ids)).values(schedule_id=None))


def _conflict_out(record: ConflictRecord) -> ConflictOut:
    candidate = record.candidate
    return ConflictOut(
        ruleId=candidate.rule_id,
        groupId=candidate.group_id,
        teacherId=candidate.teacher_id,
        location=candidate.location,
        startDate=candidate.start_at,
        endDate=candidate.end_at,
        conflictingEventIds=record.conflicting_event_ids,
        reasons=record.reasons,
    )


def _day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    return datetime.combine(start, time.min), datetime.combine(end, time.max)


@router.get("/groups/{group_id}/schedule", response_model=GroupScheduleOut)
def get_group_schedule(
    group_id: str,
    current_user: User = Depends(require_permissions(Capability.calendar_view)),
    db: Session = Depends(get_db),
) -> GroupScheduleOut:
    group = _get_group_or_404(db, group_id)
    entries = load_active_rules(db, group.id)
    return GroupScheduleOut(
        group_id=group.id,
        group_name=group.name,
        schedule=[ScheduleEntryOut.model_validate(entry) for entry in entries],
    )


@router.post(
    "/groups/{group_id}/schedule",
    response_model=ScheduleEntryOut,
    status_code=status.HTTP_201_CREATED,
)
def create_schedule_entry(
    group_id: str,
    payload: ScheduleEntryCreate,
    current_user: User = Depends(require_permissions(Capability.calendar_create)),
    db: Session = Depends(get_db),
) -> ScheduleEntryOut:
    group = _get_group_or_404(db, group_id)
    _ensure_teacher_exists(db, payload.teacher_id)
    entry = GroupSchedule(group_id=group.id, is_active=True, **payload.model_dump())
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return ScheduleEntryOut.model_validate(entry)


@router.put("/groups/{group_id}/schedule/{entry_id}", response_model=ScheduleEntryOut)
def update_schedule_entry(
    group_id: str,
    entry_id: str,
    payload: ScheduleEntryUpdate,
    current_user: User = Depends(require_permissions(Capability.calendar_manage)),
    db: Session = Depends(get_db),
) -> ScheduleEntryOut:
    entry = _get_entry_or_404(db, group_id, entry_id)
    data = payload.model_dump(exclude_unset=True)
    if "teacher_id" in data:
        _ensure_teacher_exists(db, data["teacher_id"])
    starts = parse_time_of_day(data.get("start_time", entry.start_time))
    ends = parse_time_of_day(data.get("end_time", entry.end_time))
    if starts is None or ends is None or ends <= starts:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="endTime must be after startTime")

    for key, value in data.items():
        setattr(entry, key, value)
    db.commit()
    db.refresh(entry)
    return ScheduleEntryOut.model_validate(entry)


@router.delete("/groups/{group_id}/schedule/{entry_id}")
def delete_schedule_entry(
    group_id: str,
    entry_id: str,
    current_user: User = Depends(require_permissions(Capability.calendar_manage)),
    db: Session = Depends(get_db),
) -> dict:
    entry = _get_entry_or_404(db, group_id, entry_id)
    _detach_events(db, [entry.id])
    db.delete(entry)
    db.commit()
    return {"success": True}


@router.post("/groups/{group_id}/schedule/generate", response_model=GenerateScheduleResponse)
def generate_group_schedule(
    group_id: str,
    payload: GenerateScheduleRequest,
    request: Request,
    current_user: User = Depends(require_permissions(Capability.calendar_manage)),
    db: Session = Depends(get_db),
) -> GenerateScheduleResponse:
    group = _get_group_or_404(db, group_id)
    rules = load_active_rules(db, group.id)
    if not rules:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Empty schedule")

    result = generate_group_events(
        db,
        group=group,
        rules=rules,
        window_start=payload.startDate,
        window_end=payload.endDate,
        invoking_user=current_user,
        title=payload.title or settings.default_lesson_title,
        location=payload.location,
        is_attendance_required=payload.isAttendanceRequired,
    )

    notify_group_schedule_generated(
        db,
        group=group,
        created_count=result.created_count,
        actor_user_id=current_user.id,
    )
    log_activity(
        db,
        user=current_user,
        action="schedule.generate",
        entity_type="group",
        entity_id=group.id,
        details={
            "start_date": payload.startDate.isoformat(),
            "end_date": payload.endDate.isoformat(),
            "created": result.created_count,
            "conflicts": result.conflict_count,
        },
        request=request,
    )
    db.commit()

    return GenerateScheduleResponse(
        success=True,
        created=result.created_count,
        createdCount=result.created_count,
        conflictCount=result.conflict_count,
        conflicts=[_conflict_out(record) for record in result.conflicts],
        createdEvents=[EventOut.model_validate(event) for event in result.created_events],
    )


def _primary_teacher_id(db: Session, group: Group) -> str | None:
    links = list(
        db.execute(
            select(GroupTeacher).where(GroupTeacher.group_id == group.id).order_by(GroupTeacher.created_at)
        ).scalars()
    )
    main = [link for link in links if link.role == GroupTeacherRole.main]
    chosen = (main or links)[:1]
    return chosen[0].user_id if chosen else None


def _upsert_rules(
    db: Session,
    *,
    group: Group,
    payload: GenerateAdvancedRequest,
    teacher_id: str,
) -> tuple[list[GroupSchedule], list[GroupSchedule]]:
    rules: list[GroupSchedule] = []
    created: list[GroupSchedule] = []
    for day in payload.scheduleDays:
        existing = db.execute(
            select(GroupSchedule).where(
                GroupSchedule.group_id == group.id,
                GroupSchedule.day_of_week == day.day_of_week,
                GroupSchedule.start_time == day.start_time,
                GroupSchedule.end_time == day.end_time,
                GroupSchedule.is_active.is_(True),
            )
        ).scalars().first()
        if existing is not None:
            rules.append(existing)
            continue
        rule = GroupSchedule(
            group_id=group.id,
            day_of_week=day.day_of_week,
            start_time=day.start_time,
            end_time=day.end_time,
            teacher_id=teacher_id,
            location=payload.location,
            is_active=True,
        )
        db.add(rule)
        rules.append(rule)
        created.append(rule)
    db.commit()
    return rules, created


@router.post("/schedule/generate-advanced", response_model=GenerateAdvancedResponse)
def generate_advanced_schedule(
    payload: GenerateAdvancedRequest,
    request: Request,
    current_user: User = Depends(require_permissions(Capability.calendar_manage)),
    db: Session = Depends(get_db),
) -> GenerateAdvancedResponse:
    groups = list(
        db.execute(
            select(Group)
            .where(Group.id.in_(payload.groupIds), Group.is_active.is_(True))
            .order_by(Group.name)
        ).scalars()
    )
    if not groups:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active groups found")

    events: list[EventOut] = []
    schedules: list[ScheduleEntryOut] = []
    conflicts: list[ConflictOut] = []
    for group in groups:
        teacher_id = _primary_teacher_id(db, group) or current_user.id
        rules, created_rules = _upsert_rules(db, group=group, payload=payload, teacher_id=teacher_id)
        schedules.extend(ScheduleEntryOut.model_validate(rule) for rule in created_rules)

        result = generate_group_events(
            db,
            group=group,
            rules=rules,
            window_start=payload.startDate,
            window_end=payload.endDate,
            invoking_user=current_user,
            title=payload.title or f"{group.name} lesson",
            description=f"Regular session of group {group.name}",
            location=payload.location,
            is_attendance_required=payload.isAttendanceRequired,
        )
        events.extend(EventOut.model_validate(event) for event in result.created_events)
        conflicts.extend(_conflict_out(record) for record in result.conflicts)
        notify_group_schedule_generated(
            db,
            group=group,
            created_count=result.created_count,
            actor_user_id=current_user.id,
        )

    log_activity(
        db,
        user=current_user,
        action="schedule.generate_advanced",
        entity_type="group",
        details={
            "group_ids": [group.id for group in groups],
            "created": len(events),
            "conflicts": len(conflicts),
        },
        request=request,
    )
    db.commit()

    return GenerateAdvancedResponse(
        success=True,
        message=f"Created {len(events)} session(s) for {len(groups)} group(s)",
        events=events,
        schedules=schedules,
        conflicts=conflicts,
        summary=GenerateAdvancedSummary(
            groupsCount=len(groups),
            eventsCount=len(events),
            conflictsCount=len(conflicts),
            schedulesCount=len(schedules),
            period=GenerationPeriod(start=payload.startDate, end=payload.endDate),
        ),
    )


@router.patch("/schedule/bulk-update", response_model=BulkUpdateResponse)
def bulk_update_schedule(
    payload: BulkUpdateRequest,
    request: Request,
    current_user: User = Depends(require_permissions(Capability.calendar_manage)),
    db: Session = Depends(get_db),
) -> BulkUpdateResponse:
    entry_ids = list(dict.fromkeys(payload.entryIds))
    if not entry_ids:
        return BulkUpdateResponse(success=True, updatedCount=0, action=payload.action)

    if payload.action == "delete":
        _detach_events(db, entry_ids)
        outcome = db.execute(delete(GroupSchedule).where(GroupSchedule.id.in_(entry_ids)))
    else:
        outcome = db.execute(
            update(GroupSchedule)
            .where(GroupSchedule.id.in_(entry_ids))
            .values(is_active=payload.action == "activate")
        )
    log_activity(
        db,
        user=current_user,
        action=f"schedule.bulk_{payload.action}",
        entity_type="group_schedule",
        details={"entry_ids": entry_ids, "count": outcome.rowcount},
        request=request,
    )
    db.commit()
    return BulkUpdateResponse(success=True, updatedCount=outcome.rowcount, action=payload.action)


def _collect_future_deletions(
    db: Session,
    payload: BulkDeleteRequest,
    now: datetime,
) -> tuple[list[Event], list[GroupSchedule]]:
    selected: dict[str, Event] = {}
    if payload.eventIds:
        for event in db.execute(
            select(Event).where(
                Event.id.in_(payload.eventIds),
                Event.start_at > now,
                Event.is_active.is_(True),
            )
        ).scalars():
            selected[event.id] = event
    if payload.startDate and payload.endDate:
        lower, upper = _day_bounds(payload.startDate, payload.endDate)
        for event in db.execute(
            select(Event).where(
                Event.start_at >= lower,
                Event.start_at <= upper,
                Event.start_at > now,
                Event.is_active.is_(True),
            )
        ).scalars():
            selected.setdefault(event.id, event)

    schedules: list[GroupSchedule] = []
    if payload.groupIds:
        schedules = list(
            db.execute(select(GroupSchedule).where(GroupSchedule.group_id.in_(payload.groupIds))).scalars()
        )
    events = sorted(selected.values(), key=lambda item: (item.start_at, item.id))
    return events, schedules


@router.post("/schedule/bulk-delete-future", response_model=BulkDeletePreview)
def preview_bulk_delete_future(
    payload: BulkDeleteRequest,
    current_user: User = Depends(require_permissions(Capability.calendar_manage)),
    db: Session = Depends(get_db),
) -> BulkDeletePreview:
    events, schedules = _collect_future_deletions(db, payload, datetime.now())
    return BulkDeletePreview(
        success=True,
        events=[EventOut.model_validate(event) for event in events],
        schedules=[ScheduleEntryOut.model_validate(entry) for entry in schedules],
        summary=DeletePreviewSummary(
            eventsCount=len(events),
            schedulesCount=len(schedules),
            totalCount=len(events) + len(schedules),
        ),
    )


@router.delete("/schedule/bulk-delete-future", response_model=BulkDeleteResult)
def bulk_delete_future(
    payload: BulkDeleteRequest,
    request: Request,
    current_user: User = Depends(require_permissions(Capability.calendar_manage)),
    db: Session = Depends(get_db),
) -> BulkDeleteResult:
    if not payload.confirmDelete:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Confirmation required. Set confirmDelete to true to proceed.",
        )
    events, schedules = _collect_future_deletions(db, payload, datetime.now())
    schedule_ids = [entry.id for entry in schedules]
    for event in events:
        db.delete(event)
    db.flush()
    _detach_events(db, schedule_ids)
    for entry in schedules:
        db.delete(entry)
    log_activity(
        db,
        user=current_user,
        action="schedule.bulk_delete_future",
        entity_type="event",
        details={
            "deleted_events": len(events),
            "deleted_schedules": len(schedules),
            "event_ids": payload.eventIds,
            "group_ids": payload.groupIds,
            "start_date": payload.startDate.isoformat() if payload.startDate else None,
            "end_date": payload.endDate.isoformat() if payload.endDate else None,
        },
        request=request,
    )
    db.commit()
    logger.info(
        "User %s deleted %d future event(s) and %d schedule entr(ies)",
        current_user.id,
        len(events),
        len(schedules),
    )
    return BulkDeleteResult(
        success=True,
        message=f"Deleted {len(events)} event(s) and {len(schedules)} schedule entr(ies)",
        deleted=DeletePreviewSummary(
            eventsCount=len(events),
            schedulesCount=len(schedules),
            totalCount=len(events) + len(schedules),
        ),
    )


@router.get("/schedule/calendar", response_model=list[EventOut])
def admin_calendar(
    start: date = Query(...),
    end: date = Query(...),
    group_id: str | None = Query(default=None, alias="groupId"),
    current_user: User = Depends(require_permissions(Capability.calendar_view)),
    db: Session = Depends(get_db),
) -> list[EventOut]:
    if start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date range")
    lower, upper = _day_bounds(start, end)
    query = (
        select(Event)
        .where(Event.is_active.is_(True), Event.start_at >= lower, Event.start_at <= upper)
        .order_by(Event.start_at, Event.id)
    )
    if group_id:
        query = query.where(Event.group_id == group_id)
    return [EventOut.model_validate(event) for event in db.execute(query).scalars()]


@router.put("/schedule/event/{event_id}", response_model=EventOut)
def update_event(
    event_id: str,
    payload: EventUpdate,
    current_user: User = Depends(require_permissions(Capability.calendar_manage)),
    db: Session = Depends(get_db),
) -> EventOut:
    event = db.get(Event, event_id)
    if event is None:
        raise ResourceNotFoundError("Event", event_id)
    data = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key in {"description", "location"}
    }
    start_at = data.get("start_at", event.start_at)
    end_at = data.get("end_at", event.end_at)
    if end_at <= start_at:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="endDate must be after startDate")
    if "teacher_id" in data:
        _ensure_teacher_exists(db, data["teacher_id"])

    moved = bool(data.keys() & {"start_at", "end_at", "teacher_id", "location"})
    reactivated = data.get("is_active") is True and not event.is_active
    if (moved and data.get("is_active", event.is_active)) or reactivated:
        candidate = EventCandidate(
            rule_id=event.schedule_id,
            group_id=event.group_id,
            teacher_id=data.get("teacher_id", event.teacher_id),
            location=data.get("location", event.location),
            start_at=start_at,
            end_at=end_at,
        )
        overlapping = find_overlapping_events(db, candidate, exclude_event_id=event.id)
        if overlapping:
            raise ConflictError(
                "Event overlaps an existing event",
                details={
                    "conflictingEventIds": [item.id for item in overlapping],
                    "reasons": conflict_reasons(candidate, overlapping),
                },
            )

    for key, value in data.items():
        setattr(event, key, value)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info("Update of event %s rejected by a storage constraint", event_id)
        raise ConflictError("Event slot is already taken") from exc
    db.refresh(event)
    return EventOut.model_validate(event)


@router.delete("/schedule/event/{event_id}")
def delete_event(
    event_id: str,
    current_user: User = Depends(require_permissions(Capability.calendar_manage)),
    db: Session = Depends(get_db),
) -> dict:
    event = db.get(Event, event_id)
    if event is None:
        raise ResourceNotFoundError("Event", event_id)
    db.delete(event)
    db.commit()
    return {"success": True}
