def test_group_lifecycle(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    _, teacher = account("teacher@example.com", "TEACHER", name="Teacher")
    _, student = account("student@example.com", "STUDENT", name="Student")

    created = client.post(
        "/api/admin/groups/",
        json={"name": "Physics 101", "start_date": "2024-01-01", "end_date": "2024-06-30"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    group_id = created.json()["id"]

    duplicate = client.post("/api/admin/groups/", json={"name": "Physics 101"}, headers=admin_headers)
    assert duplicate.status_code == 409

    assert client.post(
        f"/api/admin/groups/{group_id}/teachers",
        json={"user_id": teacher["id"]},
        headers=admin_headers,
    ).status_code == 201
    not_a_teacher = client.post(
        f"/api/admin/groups/{group_id}/teachers",
        json={"user_id": student["id"]},
        headers=admin_headers,
    )
    assert not_a_teacher.status_code == 400
    detail = client.post(
        f"/api/admin/groups/{group_id}/students",
        json={"user_id": student["id"]},
        headers=admin_headers,
    ).json()
    assert [item["id"] for item in detail["teachers"]] == [teacher["id"]]
    assert detail["teachers"][0]["role"] == "MAIN"
    assert [item["id"] for item in detail["students"]] == [student["id"]]

    renamed = client.put(f"/api/admin/groups/{group_id}", json={"name": "Physics 102"}, headers=admin_headers)
    assert renamed.status_code == 200
    assert renamed.json()["name"] == "Physics 102"

    bad_dates = client.put(f"/api/admin/groups/{group_id}", json={"end_date": "2023-12-01"}, headers=admin_headers)
    assert bad_dates.status_code == 400

    assert client.delete(f"/api/admin/groups/{group_id}/students/{student['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/api/admin/groups/{group_id}", headers=admin_headers).json()["students"] == []

    assert client.delete(f"/api/admin/groups/{group_id}", headers=admin_headers).status_code == 200
    assert client.get("/api/admin/groups/", headers=admin_headers).json() == []
    archived = client.get("/api/admin/groups/", params={"include_inactive": True}, headers=admin_headers).json()
    assert [item["is_active"] for item in archived] == [False]


def test_teacher_can_create_groups_and_sees_assigned_ones(client, account):
    teacher_headers, teacher = account("teacher@example.com", "TEACHER")

    created = client.post("/api/admin/groups/", json={"name": "Chemistry"}, headers=teacher_headers)
    assert created.status_code == 201
    group_id = created.json()["id"]
    client.post(f"/api/admin/groups/{group_id}/teachers", json={"user_id": teacher["id"]}, headers=teacher_headers)

    mine = client.get("/api/teacher/groups", headers=teacher_headers).json()
    assert [item["name"] for item in mine] == ["Chemistry"]


def test_unknown_group_returns_404(client, account):
    admin_headers, _ = account("admin@example.com", "ADMIN")
    response = client.get("/api/admin/groups/missing", headers=admin_headers)
    assert response.status_code == 404
    assert response.json() == {"error": "Group not found"}
