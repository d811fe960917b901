from datetime import date, datetime, timedelta, timezone


def create_group(client, headers, name="Group A", **extra):
    response = client.post("/api/admin/groups/", json={"name": name, **extra}, headers=headers)
    assert response.status_code == 201
    return response.json()


def add_rule(client, headers, group_id, day=1, start="09:00", end="10:30", **extra):
    response = client.post(
        f"/api/admin/groups/{group_id}/schedule",
        json={"dayOfWeek": day, "startTime": start, "endTime": end, **extra},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


def generate(client, headers, group_id, start="2024-01-01", end="2024-01-22", **extra):
    return client.post(
        f"/api/admin/groups/{group_id}/schedule/generate",
        json={"startDate": start, "endDate": end, **extra},
        headers=headers,
    )


def test_generate_group_schedule(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    _, teacher = account("teacher@example.com", "TEACHER")
    group = create_group(client, admin_headers)
    rule = add_rule(client, admin_headers, group["id"], teacherId=teacher["id"], location="Room 1")

    response = generate(client, admin_headers, group["id"], title="Algebra")
    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["created"] == 4
    assert payload["createdCount"] == 4
    assert payload["conflictCount"] == 0
    assert [item["startDate"] for item in payload["createdEvents"]] == [
        "2024-01-01T09:00:00",
        "2024-01-08T09:00:00",
        "2024-01-15T09:00:00",
        "2024-01-22T09:00:00",
    ]
    first = payload["createdEvents"][0]
    assert first["endDate"] == "2024-01-01T10:30:00"
    assert first["title"] == "Algebra"
    assert first["teacherId"] == teacher["id"]
    assert first["scheduleId"] == rule["id"]
    assert first["location"] == "Room 1"
    assert first["type"] == "LESSON"

    calendar = client.get(
        "/api/admin/schedule/calendar",
        params={"start": "2024-01-01", "end": "2024-01-31", "groupId": group["id"]},
        headers=admin_headers,
    )
    assert calendar.status_code == 200
    assert len(calendar.json()) == 4


def test_regenerating_same_window_creates_nothing(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    group = create_group(client, admin_headers)
    add_rule(client, admin_headers, group["id"])

    assert generate(client, admin_headers, group["id"]).json()["createdCount"] == 4
    second = generate(client, admin_headers, group["id"]).json()

    assert second["createdCount"] == 0
    assert second["conflictCount"] == 4
    assert all("duplicate" in item["reasons"] for item in second["conflicts"])
    assert all(item["conflictingEventIds"] for item in second["conflicts"])


def test_teacher_conflicts_across_groups(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    _, teacher = account("teacher@example.com", "TEACHER")
    _, other = account("other@example.com", "TEACHER")
    morning = create_group(client, admin_headers, "Morning")
    shared = create_group(client, admin_headers, "Shared teacher")
    different = create_group(client, admin_headers, "Different teacher")
    add_rule(client, admin_headers, morning["id"], teacherId=teacher["id"])
    add_rule(client, admin_headers, shared["id"], start="10:00", end="11:00", teacherId=teacher["id"])
    add_rule(client, admin_headers, different["id"], teacherId=other["id"])

    assert generate(client, admin_headers, morning["id"]).json()["createdCount"] == 4

    clashing = generate(client, admin_headers, shared["id"]).json()
    assert clashing["createdCount"] == 0
    assert clashing["conflictCount"] == 4
    assert {tuple(item["reasons"]) for item in clashing["conflicts"]} == {("teacher",)}

    free = generate(client, admin_headers, different["id"]).json()
    assert free["createdCount"] == 4
    assert free["conflictCount"] == 0


def test_generate_validation_and_lookup_errors(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    group = create_group(client, admin_headers)

    empty = generate(client, admin_headers, group["id"])
    assert empty.status_code == 404
    assert empty.json() == {"error": "Empty schedule"}

    missing = generate(client, admin_headers, "does-not-exist")
    assert missing.status_code == 404
    assert missing.json() == {"error": "Group not found"}

    add_rule(client, admin_headers, group["id"])
    inverted = generate(client, admin_headers, group["id"], start="2024-02-01", end="2024-01-01")
    assert inverted.status_code == 400
    assert "Invalid date range" in inverted.json()["error"]

    no_dates = client.post(f"/api/admin/groups/{group['id']}/schedule/generate", json={}, headers=admin_headers)
    assert no_dates.status_code == 400

    calendar = client.get(
        "/api/admin/schedule/calendar",
        params={"start": "2024-01-01", "end": "2024-01-31"},
        headers=admin_headers,
    )
    assert calendar.json() == []


def test_generate_requires_session_and_staff_role(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    student_headers, _ = account("student@example.com", "STUDENT")
    teacher_headers, _ = account("teacher@example.com", "TEACHER")
    group = create_group(client, admin_headers)
    add_rule(client, admin_headers, group["id"])

    anonymous = generate(client, {}, group["id"])
    assert anonymous.status_code == 401
    assert anonymous.json() == {"error": "Unauthorized"}

    student = generate(client, student_headers, group["id"])
    assert student.status_code == 403
    assert student.json() == {"error": "Access denied"}

    teacher = generate(client, teacher_headers, group["id"])
    assert teacher.status_code == 200
    assert teacher.json()["createdCount"] == 4


def test_rule_validation(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    group = create_group(client, admin_headers)
    url = f"/api/admin/groups/{group['id']}/schedule"

    for body in [
        {"dayOfWeek": 7, "startTime": "09:00", "endTime": "10:00"},
        {"dayOfWeek": 1, "startTime": "25:99", "endTime": "26:00"},
        {"dayOfWeek": 1, "startTime": "11:00", "endTime": "10:00"},
    ]:
        response = client.post(url, json=body, headers=admin_headers)
        assert response.status_code == 400, body

    rule = add_rule(client, admin_headers, group["id"])
    bad_update = client.put(f"{url}/{rule['id']}", json={"endTime": "08:00"}, headers=admin_headers)
    assert bad_update.status_code == 400

    moved = client.put(f"{url}/{rule['id']}", json={"dayOfWeek": 3}, headers=admin_headers)
    assert moved.status_code == 200
    assert moved.json()["dayOfWeek"] == 3

    listing = client.get(url, headers=admin_headers).json()
    assert listing["groupName"] == "Group A"
    assert [item["id"] for item in listing["schedule"]] == [rule["id"]]

    assert client.delete(f"{url}/{rule['id']}", headers=admin_headers).status_code == 200
    assert client.get(url, headers=admin_headers).json()["schedule"] == []


def test_generation_is_clipped_to_group_end_date(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    group = create_group(client, admin_headers, start_date="2024-01-01", end_date="2024-01-10")
    add_rule(client, admin_headers, group["id"])

    payload = generate(client, admin_headers, group["id"]).json()
    assert payload["createdCount"] == 2


def test_students_are_notified_and_see_their_group_events(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    member_headers, member = account("member@example.com", "STUDENT")
    outsider_headers, _ = account("outsider@example.com", "STUDENT")
    group = create_group(client, admin_headers)
    joined = client.post(
        f"/api/admin/groups/{group['id']}/students",
        json={"user_id": member["id"]},
        headers=admin_headers,
    )
    assert joined.status_code == 201
    add_rule(client, admin_headers, group["id"])
    generate(client, admin_headers, group["id"])

    notifications = client.get("/api/notifications", headers=member_headers)
    assert notifications.status_code == 200
    titles = {item["title"] for item in notifications.json()}
    assert titles == {"Added to Group", "Schedule Updated"}
    assert client.get("/api/notifications/unread-count", headers=member_headers).json() == {"count": 2}

    marked = client.post("/api/notifications/mark-all-read", headers=member_headers)
    assert marked.json() == {"updated": 2}
    assert client.get("/api/notifications/unread-count", headers=member_headers).json() == {"count": 0}

    window = {"start": "2024-01-01", "end": "2024-01-31"}
    assert len(client.get("/api/events", params=window, headers=member_headers).json()) == 4
    assert client.get("/api/events", params=window, headers=outsider_headers).json() == []
    assert client.get("/api/notifications", headers=outsider_headers).json() == []

    my_groups = client.get("/api/student/groups", headers=member_headers).json()
    assert [item["name"] for item in my_groups] == ["Group A"]


def test_generate_advanced_upserts_rules_for_each_group(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    teacher_headers, teacher = account("teacher@example.com", "TEACHER")
    first = create_group(client, admin_headers, "First")
    second = create_group(client, admin_headers, "Second")
    client.post(
        f"/api/admin/groups/{first['id']}/teachers",
        json={"user_id": teacher["id"], "role": "MAIN"},
        headers=admin_headers,
    )
    body = {
        "groupIds": [first["id"], second["id"], "missing"],
        "startDate": "2024-01-01",
        "endDate": "2024-01-14",
        "scheduleDays": [
            {"dayOfWeek": 1, "startTime": "09:00", "endTime": "10:30"},
            {"dayOfWeek": 3, "startTime": "14:00", "endTime": "15:30"},
        ],
    }

    response = client.post("/api/admin/schedule/generate-advanced", json=body, headers=admin_headers)
    assert response.status_code == 200
    payload = response.json()
    assert payload["success"] is True
    assert payload["summary"]["groupsCount"] == 2
    assert payload["summary"]["schedulesCount"] == 4
    assert payload["summary"]["eventsCount"] == 8
    assert payload["summary"]["conflictsCount"] == 0
    assert payload["summary"]["period"] == {"start": "2024-01-01", "end": "2024-01-14"}
    first_events = [item for item in payload["events"] if item["groupId"] == first["id"]]
    assert {item["teacherId"] for item in first_events} == {teacher["id"]}
    assert {item["title"] for item in first_events} == {"First lesson"}

    teacher_events = client.get(
        "/api/events", params={"start": "2024-01-01", "end": "2024-01-14"}, headers=teacher_headers
    ).json()
    assert len(teacher_events) == 4

    again = client.post("/api/admin/schedule/generate-advanced", json=body, headers=admin_headers).json()
    assert again["summary"]["schedulesCount"] == 0
    assert again["summary"]["eventsCount"] == 0
    assert again["summary"]["conflictsCount"] == 8


def test_generate_advanced_errors(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    body = {
        "groupIds": ["missing"],
        "startDate": "2024-01-01",
        "endDate": "2024-01-14",
        "scheduleDays": [{"dayOfWeek": 1, "startTime": "09:00", "endTime": "10:30"}],
    }
    response = client.post("/api/admin/schedule/generate-advanced", json=body, headers=admin_headers)
    assert response.status_code == 404
    assert response.json() == {"error": "No active groups found"}

    body["scheduleDays"] = []
    response = client.post("/api/admin/schedule/generate-advanced", json=body, headers=admin_headers)
    assert response.status_code == 400


def test_bulk_update_deactivates_rules(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    group = create_group(client, admin_headers)
    first = add_rule(client, admin_headers, group["id"], day=1)
    second = add_rule(client, admin_headers, group["id"], day=2)

    response = client.patch(
        "/api/admin/schedule/bulk-update",
        json={"action": "deactivate", "entryIds": [first["id"], second["id"]]},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json() == {"success": True, "updatedCount": 2, "action": "deactivate"}

    empty = generate(client, admin_headers, group["id"])
    assert empty.status_code == 404

    client.patch(
        "/api/admin/schedule/bulk-update",
        json={"action": "activate", "entryIds": [first["id"]]},
        headers=admin_headers,
    )
    assert generate(client, admin_headers, group["id"]).json()["createdCount"] == 4


def test_bulk_delete_future_preview_and_confirm(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    group = create_group(client, admin_headers)
    add_rule(client, admin_headers, group["id"], day=1)
    add_rule(client, admin_headers, group["id"], day=4)
    start = date.today() + timedelta(days=1)
    end = start + timedelta(days=13)
    created = generate(client, admin_headers, group["id"], start=start.isoformat(), end=end.isoformat()).json()
    assert created["createdCount"] == 4

    body = {"startDate": start.isoformat(), "endDate": end.isoformat(), "groupIds": [group["id"]]}
    preview = client.post("/api/admin/schedule/bulk-delete-future", json=body, headers=admin_headers)
    assert preview.status_code == 200
    assert preview.json()["summary"] == {"eventsCount": 4, "schedulesCount": 2, "totalCount": 6}

    unconfirmed = client.request("DELETE", "/api/admin/schedule/bulk-delete-future", json=body, headers=admin_headers)
    assert unconfirmed.status_code == 400

    confirmed = client.request(
        "DELETE",
        "/api/admin/schedule/bulk-delete-future",
        json={**body, "confirmDelete": True},
        headers=admin_headers,
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["deleted"]["totalCount"] == 6

    calendar = client.get(
        "/api/admin/schedule/calendar",
        params={"start": start.isoformat(), "end": end.isoformat()},
        headers=admin_headers,
    )
    assert calendar.json() == []


def test_single_event_update_and_delete(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    group = create_group(client, admin_headers)
    add_rule(client, admin_headers, group["id"])
    event = generate(client, admin_headers, group["id"], end="2024-01-07").json()["createdEvents"][0]

    updated = client.put(
        f"/api/admin/schedule/event/{event['id']}",
        json={"title": "Moved lesson", "location": "Lab"},
        headers=admin_headers,
    )
    assert updated.status_code == 200
    assert updated.json()["title"] == "Moved lesson"
    assert updated.json()["location"] == "Lab"

    inverted = client.put(
        f"/api/admin/schedule/event/{event['id']}",
        json={"endDate": "2024-01-01T08:00:00"},
        headers=admin_headers,
    )
    assert inverted.status_code == 400

    assert client.delete(f"/api/admin/schedule/event/{event['id']}", headers=admin_headers).status_code == 200
    missing = client.delete(f"/api/admin/schedule/event/{event['id']}", headers=admin_headers)
    assert missing.status_code == 404
    assert missing.json() == {"error": f"Event with id {event['id']} not found"}


def test_event_update_accepts_offset_timestamps(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    group = create_group(client, admin_headers)
    add_rule(client, admin_headers, group["id"])
    event = generate(client, admin_headers, group["id"], end="2024-01-07").json()["createdEvents"][0]

    response = client.put(
        f"/api/admin/schedule/event/{event['id']}",
        json={"startDate": "2024-01-02T08:00:00Z", "endDate": "2024-01-02T09:00:00Z"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    local_start = datetime(2024, 1, 2, 8, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
    assert response.json()["startDate"] == local_start.isoformat()
    assert response.json()["endDate"] == (local_start + timedelta(hours=1)).isoformat()


def test_event_update_rejects_double_booking(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    group = create_group(client, admin_headers)
    add_rule(client, admin_headers, group["id"])
    first, second = generate(client, admin_headers, group["id"], end="2024-01-08").json()["createdEvents"]
    onto_first = {"startDate": first["startDate"], "endDate": first["endDate"]}

    overlapping = client.put(f"/api/admin/schedule/event/{second['id']}", json=onto_first, headers=admin_headers)
    assert overlapping.status_code == 409
    body = overlapping.json()
    assert body["error"] == "Event overlaps an existing event"
    assert body["details"]["conflictingEventIds"] == [first["id"]]
    assert "teacher" in body["details"]["reasons"]

    # An inactive row is invisible to the overlap query but still holds its slot.
    assert client.put(
        f"/api/admin/schedule/event/{first['id']}", json={"isActive": False}, headers=admin_headers
    ).status_code == 200
    taken = client.put(f"/api/admin/schedule/event/{second['id']}", json=onto_first, headers=admin_headers)
    assert taken.status_code == 409
    assert taken.json() == {"error": "Event slot is already taken"}

    untouched = client.put(
        f"/api/admin/schedule/event/{second['id']}", json={"title": "Still here"}, headers=admin_headers
    )
    assert untouched.status_code == 200
    assert untouched.json()["startDate"] == second["startDate"]

    nudged = {"startDate": "2024-01-08T10:00:00", "endDate": "2024-01-08T11:00:00"}
    assert client.put(
        f"/api/admin/schedule/event/{first['id']}", json=nudged, headers=admin_headers
    ).status_code == 200
    reactivated = client.put(
        f"/api/admin/schedule/event/{first['id']}", json={"isActive": True}, headers=admin_headers
    )
    assert reactivated.status_code == 409
    assert reactivated.json()["details"]["conflictingEventIds"] == [second["id"]]
