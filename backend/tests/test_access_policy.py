import pytest

from app.core.access import Allow, Deny, build_route_policy
from app.core.permissions import DEFAULT_PERMISSION_TABLE
from app.models.user import UserRole

policy = build_route_policy(DEFAULT_PERMISSION_TABLE, api_prefix="/api")


@pytest.mark.parametrize(
    "path",
    [
        "/api/admin",
        "/api/admin/groups",
        "/api/admin/schedule/generate-advanced",
        "/api/admin/users/123",
    ],
)
def test_student_is_denied_admin_prefix_before_capabilities(path):
    decision = policy.resolve_route_access(UserRole.student, "GET", path, authenticated=True)
    assert isinstance(decision, Deny)
    assert decision.kind == "forbidden"
    assert decision.rule == "prefix:/api/admin"


def test_student_denied_even_when_capability_is_held():
    # groups.view is granted to STUDENT, the prefix stage still wins.
    assert DEFAULT_PERMISSION_TABLE.has_permission(UserRole.student, "groups.view")
    decision = policy.resolve_route_access("STUDENT", "GET", "/api/admin/groups", authenticated=True)
    assert decision == Deny(kind="forbidden", rule="prefix:/api/admin")


def test_teacher_passes_prefix_but_fails_capability():
    listing = policy.resolve_route_access(UserRole.teacher, "GET", "/api/admin/users", authenticated=True)
    assert isinstance(listing, Allow)

    removal = policy.resolve_route_access(UserRole.teacher, "DELETE", "/api/admin/users/42", authenticated=True)
    assert isinstance(removal, Deny)
    assert removal.kind == "forbidden"
    assert removal.rule.startswith("capability:")
    assert "users.manage" in removal.rule

    creation = policy.resolve_route_access(UserRole.teacher, "POST", "/api/admin/users", authenticated=True)
    assert isinstance(creation, Deny)
    assert "users.create" in creation.rule


def test_admin_reaches_user_management():
    for method in ("GET", "POST", "PATCH", "DELETE"):
        decision = policy.resolve_route_access(UserRole.admin, method, "/api/admin/users", authenticated=True)
        assert isinstance(decision, Allow)


def test_teacher_can_generate_schedules():
    decision = policy.resolve_route_access(
        UserRole.teacher, "POST", "/api/admin/schedule/generate-advanced", authenticated=True
    )
    assert isinstance(decision, Allow)
    decision = policy.resolve_route_access(
        UserRole.teacher, "POST", "/api/admin/groups/g1/schedule/generate", authenticated=True
    )
    assert isinstance(decision, Allow)


def test_role_prefixes():
    assert isinstance(policy.resolve_route_access("TEACHER", "GET", "/api/teacher/groups", authenticated=True), Allow)
    assert isinstance(policy.resolve_route_access("ADMIN", "GET", "/api/teacher/groups", authenticated=True), Allow)
    assert policy.resolve_route_access("STUDENT", "GET", "/api/teacher/groups", authenticated=True) == Deny(
        kind="forbidden", rule="prefix:/api/teacher"
    )
    assert isinstance(policy.resolve_route_access("STUDENT", "GET", "/api/student/groups", authenticated=True), Allow)
    assert policy.resolve_route_access("ADMIN", "GET", "/api/student/groups", authenticated=True) == Deny(
        kind="forbidden", rule="prefix:/api/student"
    )


def test_prefix_matches_whole_segments_only():
    decision = policy.resolve_route_access("STUDENT", "GET", "/api/administrators", authenticated=True)
    assert isinstance(decision, Allow)


def test_unauthenticated_requests_are_denied():
    decision = policy.resolve_route_access(None, "GET", "/api/events", authenticated=False)
    assert decision == Deny(kind="unauthenticated", rule="session.missing")


@pytest.mark.parametrize("path", ["/api/auth/login", "/api/auth/register", "/api/health", "/api/health/ready"])
def test_public_paths_skip_the_gate(path):
    assert policy.is_gated(path) is False
    assert isinstance(policy.resolve_route_access(None, "POST", path, authenticated=False), Allow)


def test_paths_outside_api_are_not_gated():
    assert policy.is_gated("/docs") is False
    assert isinstance(policy.resolve_route_access(None, "GET", "/docs", authenticated=False), Allow)


def test_unknown_role_is_denied_everything():
    decision = policy.resolve_route_access("SUPERUSER", "GET", "/api/events", authenticated=True)
    assert decision == Deny(kind="forbidden", rule="role.unknown")
    decision = policy.resolve_route_access(None, "GET", "/api/auth/me", authenticated=True)
    assert decision == Deny(kind="forbidden", rule="role.unknown")


def test_exact_requirement_wins_over_prefix():
    exact = policy.requirement_for("POST", "/api/admin/groups")
    assert exact is not None and exact.exact is True
    assert exact.capability.value == "groups.create"

    nested = policy.requirement_for("POST", "/api/admin/groups/g1/students")
    assert nested is not None and nested.exact is False
    assert nested.capability.value == "groups.manage"


def test_unlisted_route_only_needs_a_known_role():
    assert policy.requirement_for("GET", "/api/auth/me") is None
    for role in UserRole:
        assert isinstance(policy.resolve_route_access(role, "GET", "/api/auth/me", authenticated=True), Allow)


def test_decisions_are_deterministic():
    first = policy.resolve_route_access("TEACHER", "DELETE", "/api/admin/users/1", authenticated=True)
    second = policy.resolve_route_access("TEACHER", "DELETE", "/api/admin/users/1", authenticated=True)
    assert first == second


def test_teacher_is_denied_student_area_regardless_of_capabilities():
    assert DEFAULT_PERMISSION_TABLE.has_permission(UserRole.teacher, "groups.view")
    decision = policy.resolve_route_access(UserRole.teacher, "GET", "/api/student/groups", authenticated=True)
    assert decision == Deny(kind="forbidden", rule="prefix:/api/student")
