from __future__ import annotations

from datetime import date, datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from app.schemas.event import EventOut
from app.services.recurrence import TIME_PATTERN, parse_time_of_day


class ScheduleDay(BaseModel):
    day_of_week: int = Field(alias="dayOfWeek", ge=0, le=6)
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")

    model_config = {"populate_by_name": True}

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str) -> str:
        value = value.strip()
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value

    @model_validator(mode="after")
    def validate_order(self) -> "ScheduleDay":
        if parse_time_of_day(self.end_time) <= parse_time_of_day(self.start_time):
            raise ValueError("endTime must be after startTime")
        return self


class ScheduleEntryCreate(ScheduleDay):
    teacher_id: str | None = Field(default=None, alias="teacherId", max_length=36)
    location: str | None = Field(default=None, max_length=200)


class ScheduleEntryUpdate(BaseModel):
    day_of_week: int | None = Field(default=None, alias="dayOfWeek", ge=0, le=6)
    start_time: str | None = Field(default=None, alias="startTime")
    end_time: str | None = Field(default=None, alias="endTime")
    teacher_id: str | None = Field(default=None, alias="teacherId", max_length=36)
    location: str | None = Field(default=None, max_length=200)
    is_active: bool | None = Field(default=None, alias="isActive")

    model_config = {"populate_by_name": True}

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value


class ScheduleEntryOut(BaseModel):
    id: str
    group_id: str = Field(alias="groupId")
    day_of_week: int = Field(alias="dayOfWeek")
    start_time: str = Field(alias="startTime")
    end_time: str = Field(alias="endTime")
    teacher_id: str | None = Field(default=None, alias="teacherId")
    location: str | None = None
    is_active: bool = Field(alias="isActive")

    model_config = {"from_attributes": True, "populate_by_name": True}


class GroupScheduleOut(BaseModel):
    group_id: str = Field(alias="groupId")
    group_name: str = Field(alias="groupName")
    schedule: list[ScheduleEntryOut]

    model_config = {"populate_by_name": True}


class GenerateScheduleRequest(BaseModel):
    startDate: date
    endDate: date
    title: str | None = Field(default=None, max_length=200)
    location: str | None = Field(default=None, max_length=200)
    isAttendanceRequired: bool = False

    @model_validator(mode="after")
    def validate_range(self) -> "GenerateScheduleRequest":
        if self.startDate > self.endDate:
            raise ValueError("Invalid date range")
        return self


class GenerateAdvancedRequest(GenerateScheduleRequest):
    groupIds: list[str] = Field(min_length=1, max_length=200)
    scheduleDays: list[ScheduleDay] = Field(min_length=1, max_length=50)


class ConflictOut(BaseModel):
    ruleId: str | None
    groupId: str
    teacherId: str
    location: str | None
    startDate: datetime
    endDate: datetime
    conflictingEventIds: list[str]
    reasons: list[str]


class GenerateScheduleResponse(BaseModel):
    success: bool
    created: int
    createdCount: int
    conflictCount: int
    conflicts: list[ConflictOut]
    createdEvents: list[EventOut]


class GenerationPeriod(BaseModel):
    start: date
    end: date


class GenerateAdvancedSummary(BaseModel):
    groupsCount: int
    eventsCount: int
    conflictsCount: int
    schedulesCount: int
    period: GenerationPeriod


class GenerateAdvancedResponse(BaseModel):
    success: bool
    message: str
    events: list[EventOut]
    schedules: list[ScheduleEntryOut]
    conflicts: list[ConflictOut]
    summary: GenerateAdvancedSummary


class BulkUpdateRequest(BaseModel):
    action: Literal["activate", "deactivate", "delete"]
    entryIds: list[str] = Field(max_length=1000)


class BulkUpdateResponse(BaseModel):
    success: bool
    updatedCount: int
    action: str


class BulkDeleteRequest(BaseModel):
    eventIds: list[str] = Field(default_factory=list, max_length=5000)
    groupIds: list[str] = Field(default_factory=list, max_length=200)
    startDate: date | None = None
    endDate: date | None = None
    confirmDelete: bool = False

    @model_validator(mode="after")
    def validate_range(self) -> "BulkDeleteRequest":
        if self.startDate and self.endDate and self.startDate > self.endDate:
            raise ValueError("Invalid date range")
        return self


class DeletePreviewSummary(BaseModel):
    eventsCount: int
    schedulesCount: int
    totalCount: int


class BulkDeletePreview(BaseModel):
    success: bool
    events: list[EventOut]
    schedules: list[ScheduleEntryOut]
    summary: DeletePreviewSummary


class BulkDeleteResult(BaseModel):
    success: bool
    message: str
    deleted: DeletePreviewSummary
