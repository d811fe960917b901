import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.db.base import Base


class EventType(str, Enum):
    lesson = "LESSON"
    exam = "EXAM"
    deadline = "DEADLINE"
    meeting = "MEETING"
    workshop = "WORKSHOP"
    seminar = "SEMINAR"
    consultation = "CONSULTATION"
    announcement = "ANNOUNCEMENT"
    other = "OTHER"


class Event(Base):
    __tablename__ = "events"
    # Storage-level conflict guards: concurrent generators racing past the
    # overlap query still cannot book the same teacher, room or rule occurrence twice.
    __table_args__ = (
        UniqueConstraint("teacher_id", "start_at", "end_at", name="uq_events_teacher_interval"),
        UniqueConstraint("location", "start_at", "end_at", name="uq_events_location_interval"),
        UniqueConstraint("schedule_id", "start_at", name="uq_events_schedule_occurrence"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[EventType] = mapped_column(
        SAEnum(EventType, name="event_type", values_callable=lambda enum: [item.value for item in enum]),
        nullable=False,
        default=EventType.lesson,
    )
    start_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    group_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("groups.id", ondelete="CASCADE"), nullable=True, index=True
    )
    teacher_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    created_by_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    schedule_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("group_schedules.id", ondelete="SET NULL"), nullable=True, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_attendance_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
