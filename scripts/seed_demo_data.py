"""Seed demo accounts, two groups with weekly rules, and their generated sessions.

Run:
  PYTHONPATH=backend python scripts/seed_demo_data.py
"""

from __future__ import annotations

from datetime import date, timedelta
import os
from typing import Iterable

from sqlalchemy import select

from app.core.security import get_password_hash
from app.db.bootstrap import ensure_runtime_schema_compatibility
from app.db.session import SessionLocal
from app.models.group import Group, GroupStudent, GroupTeacher, GroupTeacherRole
from app.models.schedule import GroupSchedule
from app.models.user import User, UserRole
from app.services.schedule_expander import generate_group_events, load_active_rules

DEFAULT_PASSWORD = os.getenv("DEMO_PASSWORD", "DemoPass123!")
GENERATION_WEEKS = int(os.getenv("DEMO_WEEKS", "4"))


def _env_email(key: str, default: str) -> str:
    value = os.getenv(key, "").strip()
    return value or default


DEMO_ACCOUNTS = {
    "admin": {
        "name": "Demo Admin",
        "email": _env_email("DEMO_ADMIN_EMAIL", "admin.demo@learnhub.local"),
        "role": UserRole.admin,
    },
    "teacher_1": {
        "name": "Demo Teacher One",
        "email": _env_email("DEMO_TEACHER1_EMAIL", "teacher1.demo@learnhub.local"),
        "role": UserRole.teacher,
    },
    "teacher_2": {
        "name": "Demo Teacher Two",
        "email": _env_email("DEMO_TEACHER2_EMAIL", "teacher2.demo@learnhub.local"),
        "role": UserRole.teacher,
    },
    "student_a": {
        "name": "Demo Student A",
        "email": _env_email("DEMO_STUDENTA_EMAIL", "studenta.demo@learnhub.local"),
        "role": UserRole.student,
    },
    "student_b": {
        "name": "Demo Student B",
        "email": _env_email("DEMO_STUDENTB_EMAIL", "studentb.demo@learnhub.local"),
        "role": UserRole.student,
    },
}

# group name -> (main teacher, students, [(day_of_week, start, end, location)])
DEMO_GROUPS = {
    "Demo Group A": ("teacher_1", ["student_a"], [(1, "09:00", "10:30", "A101"), (3, "09:00", "10:30", "A101")]),
    "Demo Group B": ("teacher_2", ["student_b"], [(2, "14:00", "15:30", "A102"), (4, "14:00", "15:30", "A102")]),
}


def _upsert_user(*, name: str, email: str, role: UserRole) -> User:
    with SessionLocal() as session:
        existing = session.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if existing is None:
            existing = User(
                name=name,
                email=email,
                hashed_password=get_password_hash(DEFAULT_PASSWORD),
                role=role,
                is_active=True,
            )
            session.add(existing)
        else:
            existing.name = name
            existing.role = role
            existing.is_active = True
        session.commit()
        session.refresh(existing)
        return existing


def _upsert_group(name: str, teacher: User, students: list[User], rules: list[tuple[int, str, str, str]]) -> str:
    with SessionLocal() as session:
        group = session.execute(select(Group).where(Group.name == name)).scalar_one_or_none()
        if group is None:
            group = Group(name=name, description="Demo group", is_active=True)
            session.add(group)
            session.flush()

        links = session.execute(select(GroupTeacher).where(GroupTeacher.group_id == group.id)).scalars()
        if teacher.id not in {link.user_id for link in links}:
            session.add(GroupTeacher(group_id=group.id, user_id=teacher.id, role=GroupTeacherRole.main))
        members = {
            link.user_id: link
            for link in session.execute(select(GroupStudent).where(GroupStudent.group_id == group.id)).scalars()
        }
        for student in students:
            if student.id in members:
                members[student.id].is_active = True
            else:
                session.add(GroupStudent(group_id=group.id, user_id=student.id, is_active=True))

        existing_rules = {
            (rule.day_of_week, rule.start_time, rule.end_time)
            for rule in session.execute(select(GroupSchedule).where(GroupSchedule.group_id == group.id)).scalars()
        }
        for day, start, end, location in rules:
            if (day, start, end) in existing_rules:
                continue
            session.add(
                GroupSchedule(
                    group_id=group.id,
                    day_of_week=day,
                    start_time=start,
                    end_time=end,
                    teacher_id=teacher.id,
                    location=location,
                    is_active=True,
                )
            )
        session.commit()
        return group.id


def _generate(group_id: str, admin_id: str) -> tuple[int, int]:
    window_start = date.today()
    window_end = window_start + timedelta(weeks=GENERATION_WEEKS)
    with SessionLocal() as session:
        group = session.get(Group, group_id)
        admin = session.get(User, admin_id)
        result = generate_group_events(
            session,
            group=group,
            rules=load_active_rules(session, group.id),
            window_start=window_start,
            window_end=window_end,
            invoking_user=admin,
            title=f"{group.name} lesson",
        )
        return result.created_count, result.conflict_count


def _print_accounts(items: Iterable[tuple[str, User]]) -> None:
    print("\nDemo accounts ready:")
    for label, user in items:
        print(f"  - {label}: {user.email} | role={user.role.value}")
    print(f"\nPassword for all demo accounts: {DEFAULT_PASSWORD}")


def main() -> None:
    ensure_runtime_schema_compatibility()

    created_users: dict[str, User] = {}
    for key, item in DEMO_ACCOUNTS.items():
        created_users[key] = _upsert_user(name=item["name"], email=item["email"], role=item["role"])

    for name, (teacher_key, student_keys, rules) in DEMO_GROUPS.items():
        group_id = _upsert_group(
            name,
            created_users[teacher_key],
            [created_users[key] for key in student_keys],
            rules,
        )
        created, conflicts = _generate(group_id, created_users["admin"].id)
        print(f"{name}: {created} session(s) created, {conflicts} skipped as conflicts")

    _print_accounts(created_users.items())


if __name__ == "__main__":
    main()
