from datetime import datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.event import EventType


class EventOut(BaseModel):
    id: str
    title: str
    description: str | None = None
    type: EventType
    start_at: datetime = Field(alias="startDate")
    end_at: datetime = Field(alias="endDate")
    location: str | None = None
    group_id: str | None = Field(default=None, alias="groupId")
    teacher_id: str = Field(alias="teacherId")
    created_by_id: str = Field(alias="createdById")
    schedule_id: str | None = Field(default=None, alias="scheduleId")
    is_active: bool = Field(alias="isActive")
    is_attendance_required: bool = Field(alias="isAttendanceRequired")

    model_config = {"from_attributes": True, "populate_by_name": True}


class EventUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    type: EventType | None = None
    start_at: datetime | None = Field(default=None, alias="startDate")
    end_at: datetime | None = Field(default=None, alias="endDate")
    location: str | None = Field(default=None, max_length=200)
    teacher_id: str | None = Field(default=None, alias="teacherId", max_length=36)
    is_active: bool | None = Field(default=None, alias="isActive")
    is_attendance_required: bool | None = Field(default=None, alias="isAttendanceRequired")

    model_config = {"populate_by_name": True}

    @field_validator("start_at", "end_at")
    @classmethod
    def to_local_naive(cls, value: datetime | None) -> datetime | None:
        # Events are stored as naive local wall-clock times.
        if value is not None and value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value

    @model_validator(mode="after")
    def validate_interval(self) -> "EventUpdate":
        if self.start_at and self.end_at and self.end_at <= self.start_at:
            raise ValueError("endDate must be after startDate")
        return self
