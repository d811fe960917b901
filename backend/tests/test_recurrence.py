from datetime import date, datetime

import pytest

from app.core.exceptions import ValidationError
from app.models.schedule import GroupSchedule
from app.services.recurrence import (
    day_of_week,
    expand_rule,
    expand_rules,
    first_occurrence,
    parse_time_of_day,
)


def make_rule(rule_id="rule-1", day=1, start="09:00", end="10:30", teacher_id="teacher-1", location=None, active=True):
    return GroupSchedule(
        id=rule_id,
        group_id="group-1",
        day_of_week=day,
        start_time=start,
        end_time=end,
        teacher_id=teacher_id,
        location=location,
        is_active=active,
    )


def test_weekly_rule_expands_to_every_matching_date():
    candidates = expand_rules([make_rule()], date(2024, 1, 1), date(2024, 1, 22), default_teacher_id="admin-1")

    assert [item.start_at for item in candidates] == [
        datetime(2024, 1, 1, 9, 0),
        datetime(2024, 1, 8, 9, 0),
        datetime(2024, 1, 15, 9, 0),
        datetime(2024, 1, 22, 9, 0),
    ]
    assert all(item.end_at.time().isoformat(timespec="minutes") == "10:30" for item in candidates)
    assert all(item.start_at.date() == item.end_at.date() for item in candidates)
    assert {item.rule_id for item in candidates} == {"rule-1"}
    assert {item.group_id for item in candidates} == {"group-1"}


@pytest.mark.parametrize("day", range(7))
def test_candidates_stay_inside_window(day):
    window_start, window_end = date(2024, 2, 7), date(2024, 3, 19)
    candidates = expand_rules(
        [make_rule(day=day)], window_start, window_end, default_teacher_id="admin-1"
    )
    assert candidates
    for item in candidates:
        assert window_start <= item.start_at.date() <= window_end
        assert day_of_week(item.start_at.date()) == day


def test_single_day_window_without_matching_weekday_is_empty():
    # 2024-03-01 is a Friday.
    rule = make_rule(day=3, start="14:00", end="15:30")
    assert expand_rules([rule], date(2024, 3, 1), date(2024, 3, 1), default_teacher_id="admin-1") == []


def test_window_start_on_matching_weekday_is_included():
    rule = make_rule(day=5, start="14:00", end="15:30")
    candidates = expand_rules([rule], date(2024, 3, 1), date(2024, 3, 1), default_teacher_id="admin-1")
    assert [item.start_at for item in candidates] == [datetime(2024, 3, 1, 14, 0)]


def test_malformed_rule_is_skipped_without_affecting_others(caplog):
    broken = make_rule(rule_id="broken", start="25:99", end="26:00")
    valid = make_rule(rule_id="valid", day=2)

    with caplog.at_level("WARNING"):
        candidates = expand_rules([broken, valid], date(2024, 1, 1), date(2024, 1, 14), default_teacher_id="admin-1")

    assert [item.rule_id for item in candidates] == ["valid", "valid"]
    assert "broken" in caplog.text


@pytest.mark.parametrize(
    "start,end",
    [("10:00", "10:00"), ("11:00", "10:00"), ("9:00", "10:00"), ("", "10:00"), ("09:00", None)],
)
def test_unusable_time_ranges_produce_nothing(start, end):
    rule = make_rule(start=start, end=end)
    assert expand_rule(rule, date(2024, 1, 1), date(2024, 1, 31), default_teacher_id="admin-1") == []


@pytest.mark.parametrize("day", [-1, 7, None])
def test_invalid_weekday_produces_nothing(day):
    rule = make_rule(day=day)
    assert expand_rule(rule, date(2024, 1, 1), date(2024, 1, 31), default_teacher_id="admin-1") == []


def test_inverted_window_is_rejected():
    with pytest.raises(ValidationError) as exc_info:
        expand_rules([make_rule()], date(2024, 1, 22), date(2024, 1, 1), default_teacher_id="admin-1")
    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "Invalid date range"


def test_inactive_rules_are_ignored():
    rules = [make_rule(rule_id="off", active=False), make_rule(rule_id="on", day=3)]
    candidates = expand_rules(rules, date(2024, 1, 1), date(2024, 1, 7), default_teacher_id="admin-1")
    assert [item.rule_id for item in candidates] == ["on"]


def test_rule_without_teacher_falls_back_to_default():
    rule = make_rule(teacher_id=None)
    candidates = expand_rules([rule], date(2024, 1, 1), date(2024, 1, 7), default_teacher_id="admin-1")
    assert [item.teacher_id for item in candidates] == ["admin-1"]


def test_request_location_overrides_rule_location():
    rule = make_rule(location="Room 1")
    kept = expand_rules([rule], date(2024, 1, 1), date(2024, 1, 7), default_teacher_id="admin-1")
    overridden = expand_rules(
        [rule], date(2024, 1, 1), date(2024, 1, 7), default_teacher_id="admin-1", location="Hall B"
    )
    assert kept[0].location == "Room 1"
    assert overridden[0].location == "Hall B"


def test_helpers():
    assert day_of_week(date(2024, 1, 7)) == 0
    assert day_of_week(date(2024, 1, 13)) == 6
    assert first_occurrence(date(2024, 1, 1), 1) == date(2024, 1, 1)
    assert first_occurrence(date(2024, 1, 2), 1) == date(2024, 1, 8)
    assert parse_time_of_day("23:59").hour == 23
    assert parse_time_of_day("24:00") is None
