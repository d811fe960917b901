from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.group import GroupTeacherRole


class GroupBase(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    start_date: date | None = None
    end_date: date | None = None

    @field_validator("name")
    @classmethod
    def normalize_name(cls, value: str) -> str:
        trimmed = value.strip()
        if not trimmed:
            raise ValueError("Name cannot be empty")
        return trimmed

    @model_validator(mode="after")
    def validate_dates(self) -> "GroupBase":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class GroupCreate(GroupBase):
    pass


class GroupUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    start_date: date | None = None
    end_date: date | None = None
    is_active: bool | None = None


class GroupOut(GroupBase):
    id: str
    is_active: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class GroupMemberOut(BaseModel):
    id: str
    name: str
    email: str
    role: str | None = None


class GroupDetailOut(GroupOut):
    teachers: list[GroupMemberOut] = Field(default_factory=list)
    students: list[GroupMemberOut] = Field(default_factory=list)


class GroupTeacherAdd(BaseModel):
    user_id: str = Field(min_length=1, max_length=36)
    role: GroupTeacherRole = GroupTeacherRole.main


class GroupStudentAdd(BaseModel):
    user_id: str = Field(min_length=1, max_length=36)
