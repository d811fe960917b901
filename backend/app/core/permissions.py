from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from types import MappingProxyType

from app.core.exceptions import ConfigurationError
from app.models.user import UserRole


class Capability(str, Enum):
    courses_view = "courses.view"
    courses_create = "courses.create"
    courses_edit = "courses.edit"
    courses_delete = "courses.delete"
    courses_enroll = "courses.enroll"

    assignments_view = "assignments.view"
    assignments_create = "assignments.create"
    assignments_submit = "assignments.submit"
    assignments_grade = "assignments.grade"

    groups_view = "groups.view"
    groups_create = "groups.create"
    groups_manage = "groups.manage"
    groups_join = "groups.join"

    tests_view = "tests.view"
    tests_create = "tests.create"
    tests_take = "tests.take"
    tests_grade = "tests.grade"

    users_view = "users.view"
    users_manage = "users.manage"
    users_create = "users.create"

    analytics_view = "analytics.view"
    analytics_export = "analytics.export"

    notifications_view = "notifications.view"
    notifications_send = "notifications.send"

    calendar_view = "calendar.view"
    calendar_create = "calendar.create"
    calendar_manage = "calendar.manage"

    @property
    def section(self) -> str:
        return self.value.split(".", 1)[0]


PERMISSION_SECTIONS = (
    "courses",
    "assignments",
    "tests",
    "groups",
    "users",
    "analytics",
    "notifications",
    "calendar",
)

_STUDENT_CAPABILITIES = (
    Capability.courses_view,
    Capability.courses_enroll,
    Capability.assignments_view,
    Capability.assignments_submit,
    Capability.tests_view,
    Capability.tests_take,
    Capability.groups_view,
    Capability.groups_join,
    Capability.notifications_view,
    Capability.calendar_view,
)

_TEACHER_CAPABILITIES = (
    Capability.courses_view,
    Capability.courses_create,
    Capability.courses_edit,
    Capability.assignments_view,
    Capability.assignments_create,
    Capability.assignments_grade,
    Capability.tests_view,
    Capability.tests_create,
    Capability.tests_grade,
    Capability.groups_view,
    Capability.groups_create,
    Capability.groups_manage,
    Capability.users_view,
    Capability.analytics_view,
    Capability.notifications_view,
    Capability.notifications_send,
    Capability.calendar_view,
    Capability.calendar_create,
    Capability.calendar_manage,
)

_ADMIN_CAPABILITIES = _TEACHER_CAPABILITIES + (
    Capability.courses_delete,
    Capability.users_manage,
    Capability.users_create,
    Capability.analytics_export,
)

DEFAULT_ROLE_CAPABILITIES: Mapping[UserRole, Iterable[Capability]] = {
    UserRole.student: _STUDENT_CAPABILITIES,
    UserRole.teacher: _TEACHER_CAPABILITIES,
    UserRole.admin: _ADMIN_CAPABILITIES,
}


def _coerce_role(role: UserRole | str | None) -> UserRole | None:
    if isinstance(role, UserRole):
        return role
    try:
        return UserRole(role)
    except ValueError:
        return None


def _coerce_capability(capability: Capability | str) -> Capability | None:
    if isinstance(capability, Capability):
        return capability
    try:
        return Capability(capability)
    except ValueError:
        return None


class PermissionTable:
    """Immutable role -> capability lookup.

    The table must cover every ``UserRole``; a role may map to an empty set.
    Lookups never raise: roles or capabilities outside the declared enums are
    simply not granted anything.
    """

    __slots__ = ("_grants",)

    def __init__(self, grants: Mapping[UserRole, Iterable[Capability]]) -> None:
        missing = [role.value for role in UserRole if role not in grants]
        if missing:
            raise ConfigurationError(f"Permission table has no entry for role(s): {', '.join(missing)}")
        frozen = {role: frozenset(Capability(item) for item in grants[role]) for role in UserRole}
        object.__setattr__(self, "_grants", MappingProxyType(frozen))

    def __setattr__(self, name: str, value: object) -> None:
        raise AttributeError("PermissionTable is immutable")

    def has_permission(self, role: UserRole | str | None, capability: Capability | str) -> bool:
        resolved_role = _coerce_role(role)
        resolved_capability = _coerce_capability(capability)
        if resolved_role is None or resolved_capability is None:
            return False
        return resolved_capability in self._grants[resolved_role]

    def has_any(self, role: UserRole | str | None, capabilities: Iterable[Capability | str]) -> bool:
        return any(self.has_permission(role, capability) for capability in capabilities)

    def has_all(self, role: UserRole | str | None, capabilities: Iterable[Capability | str]) -> bool:
        return all(self.has_permission(role, capability) for capability in capabilities)

    def permissions_for(self, role: UserRole | str | None) -> list[Capability]:
        resolved_role = _coerce_role(role)
        if resolved_role is None:
            return []
        return sorted(self._grants[resolved_role], key=lambda item: item.value)

    def permissions_by_section(self, role: UserRole | str | None) -> dict[str, list[str]]:
        granted = self.permissions_for(role)
        return {
            section: [item.value for item in granted if item.section == section]
            for section in PERMISSION_SECTIONS
        }


def build_permission_table(
    grants: Mapping[UserRole, Iterable[Capability]] = DEFAULT_ROLE_CAPABILITIES,
) -> PermissionTable:
    return PermissionTable(grants)


DEFAULT_PERMISSION_TABLE = build_permission_table()


def has_permission(
    role: UserRole | str | None,
    capability: Capability | str,
    table: PermissionTable = DEFAULT_PERMISSION_TABLE,
) -> bool:
    return table.has_permission(role, capability)


def has_any(
    role: UserRole | str | None,
    capabilities: Iterable[Capability | str],
    table: PermissionTable = DEFAULT_PERMISSION_TABLE,
) -> bool:
    return table.has_any(role, capabilities)


def has_all(
    role: UserRole | str | None,
    capabilities: Iterable[Capability | str],
    table: PermissionTable = DEFAULT_PERMISSION_TABLE,
) -> bool:
    return table.has_all(role, capabilities)
