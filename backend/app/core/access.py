"""Request gating: prefix role restrictions first, then capability requirements.

The two stages run in a fixed order. A role failing a prefix restriction is
denied without consulting the capability table, so a TEACHER may enter
``/api/admin`` and still be refused a capability-gated action inside it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from app.core.permissions import Capability, PermissionTable
from app.models.user import UserRole

DenialKind = Literal["unauthenticated", "forbidden"]


@dataclass(frozen=True)
class Allow:
    allowed: Literal[True] = True


@dataclass(frozen=True)
class Deny:
    kind: DenialKind
    rule: str
    allowed: Literal[False] = False


AccessDecision = Allow | Deny


@dataclass(frozen=True)
class PrefixRestriction:
    prefix: str
    roles: frozenset[UserRole]

    @property
    def rule_id(self) -> str:
        return f"prefix:{self.prefix}"

    def matches(self, path: str) -> bool:
        return _path_has_prefix(path, self.prefix)


@dataclass(frozen=True)
class RouteRequirement:
    method: str
    path: str
    capability: Capability
    exact: bool = False

    @property
    def rule_id(self) -> str:
        kind = "exact" if self.exact else "prefix"
        return f"capability:{self.method} {self.path} ({kind}) -> {self.capability.value}"

    def matches(self, method: str, path: str) -> bool:
        if self.method != "*" and self.method != method:
            return False
        if self.exact:
            return path.rstrip("/") == self.path.rstrip("/")
        return _path_has_prefix(path, self.path)


def _path_has_prefix(path: str, prefix: str) -> bool:
    trimmed = prefix.rstrip("/")
    return path == trimmed or path.startswith(trimmed + "/")


class RoutePolicy:
    """Static access policy consulted by the request gate.

    ``gated_prefix`` bounds what is checked at all; ``public_paths`` inside it
    are reachable without a session.
    """

    def __init__(
        self,
        *,
        permissions: PermissionTable,
        gated_prefix: str,
        public_paths: tuple[str, ...] = (),
        restrictions: tuple[PrefixRestriction, ...] = (),
        requirements: tuple[RouteRequirement, ...] = (),
    ) -> None:
        self.permissions = permissions
        self.gated_prefix = gated_prefix
        self.public_paths = tuple(public_paths)
        self.restrictions = tuple(restrictions)
        self.requirements = tuple(requirements)

    def is_gated(self, path: str) -> bool:
        if not _path_has_prefix(path, self.gated_prefix):
            return False
        return not any(_path_has_prefix(path, public) for public in self.public_paths)

    def requirement_for(self, method: str, path: str) -> RouteRequirement | None:
        method = method.upper()
        exact = [item for item in self.requirements if item.exact and item.matches(method, path)]
        if exact:
            return exact[0]
        prefixed = [item for item in self.requirements if not item.exact and item.matches(method, path)]
        if not prefixed:
            return None
        return max(prefixed, key=lambda item: len(item.path.rstrip("/")))

    def resolve_route_access(
        self,
        role: UserRole | str | None,
        method: str,
        path: str,
        *,
        authenticated: bool,
    ) -> AccessDecision:
        if not self.is_gated(path):
            return Allow()
        if not authenticated:
            return Deny(kind="unauthenticated", rule="session.missing")

        try:
            resolved_role = UserRole(role)
        except ValueError:
            return Deny(kind="forbidden", rule="role.unknown")

        for restriction in self.restrictions:
            if restriction.matches(path) and resolved_role not in restriction.roles:
                return Deny(kind="forbidden", rule=restriction.rule_id)

        requirement = self.requirement_for(method, path)
        if requirement is not None and not self.permissions.has_permission(resolved_role, requirement.capability):
            return Deny(kind="forbidden", rule=requirement.rule_id)
        return Allow()


def build_route_policy(permissions: PermissionTable, api_prefix: str = "/api") -> RoutePolicy:
    admin = f"{api_prefix}/admin"
    staff = frozenset({UserRole.admin, UserRole.teacher})
    write_methods = ("POST", "PUT", "PATCH", "DELETE")

    requirements: list[RouteRequirement] = [
        RouteRequirement("GET", f"{admin}/groups", Capability.groups_view),
        RouteRequirement("POST", f"{admin}/groups", Capability.groups_create, exact=True),
        RouteRequirement("GET", f"{admin}/schedule", Capability.calendar_view),
        RouteRequirement("GET", f"{admin}/users", Capability.users_view),
        RouteRequirement("POST", f"{admin}/users", Capability.users_create, exact=True),
        RouteRequirement("GET", f"{api_prefix}/events", Capability.calendar_view),
        RouteRequirement("GET", f"{api_prefix}/notifications", Capability.notifications_view),
    ]
    for method in write_methods:
        requirements.append(RouteRequirement(method, f"{admin}/groups/", Capability.groups_manage))
        requirements.append(RouteRequirement(method, f"{admin}/schedule", Capability.calendar_manage))
    for method in ("PUT", "PATCH", "DELETE"):
        requirements.append(RouteRequirement(method, f"{admin}/users", Capability.users_manage))

    return RoutePolicy(
        permissions=permissions,
        gated_prefix=api_prefix,
        public_paths=(
            f"{api_prefix}/auth/login",
            f"{api_prefix}/auth/register",
            f"{api_prefix}/health",
        ),
        restrictions=(
            PrefixRestriction(admin, staff),
            PrefixRestriction(f"{api_prefix}/teacher", staff),
            PrefixRestriction(f"{api_prefix}/student", frozenset({UserRole.student})),
        ),
        requirements=tuple(requirements),
    )
