import pytest


@pytest.fixture()
def editor(make_headers):
    return make_headers()


@pytest.fixture()
def template_id(client, editor):
    layout = client.get("/api/period-templates/standard-layout", headers=editor)
    assert layout.status_code == 200
    body = layout.json()
    assert len(body["slots"]) == 10

    body["is_default"] = True
    created = client.post("/api/period-templates/", json=body, headers=editor)
    assert created.status_code == 201
    return created.json()["id"]


@pytest.fixture()
def initialized(client, editor, template_id):
    for batch_id in ("batch-a", "batch-b"):
        response = client.post(
            f"/api/batches/{batch_id}/schedule/initialize", json={"template_id": template_id}, headers=editor
        )
        assert response.status_code == 200
        assert len(response.json()) == 48
    return template_id


def test_template_endpoints(client, editor, template_id):
    listed = client.get("/api/period-templates/", headers=editor)
    assert [item["id"] for item in listed.json()] == [template_id]

    default = client.get("/api/period-templates/default", headers=editor)
    assert default.json()["id"] == template_id

    updated = client.put(f"/api/period-templates/{template_id}", json={"name": "Winter"}, headers=editor)
    assert updated.status_code == 200
    assert updated.json()["version"] == 2
    assert updated.json()["name"] == "Winter"


def test_invalid_template_returns_validation_envelope(client, editor):
    response = client.post(
        "/api/period-templates/",
        json={
            "name": "Broken",
            "slots": [
                {"kind": "teaching", "period_number": 1, "start_time": "09:00", "end_time": "09:45"},
                {"kind": "break", "name": "Tea", "start_time": "09:30", "end_time": "09:50"},
            ],
        },
        headers=editor,
    )

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "VALIDATION"
    assert body["details"]["reason"] == "overlapping_slots"
    assert body["details"]["slot_index"] == 1


def test_grid_calendar_and_schedule_views(client, editor, initialized):
    grid = client.get("/api/batches/batch-a/schedule/grid", headers=editor).json()
    assert grid["layout_source"] == "template"
    rows = grid["grid"]["rows"]
    assert len(rows) == 10
    assert all(len(row["cells"]) == 6 for row in rows)
    assert sum(row["kind"] == "break" for row in rows) == 2

    calendar = client.get("/api/batches/batch-a/schedule/calendar", headers=editor).json()
    assert [day["day_of_week"] for day in calendar] == [1, 2, 3, 4, 5, 6]
    assert all(len(day["periods"]) == 8 for day in calendar)

    periods = client.get("/api/batches/batch-a/schedule", headers=editor).json()
    assert len(periods) == 48

    derived = client.get("/api/batches/batch-a/schedule/derived-template", headers=editor).json()
    assert derived["source"] == "template"
    assert derived["includes_breaks"] is True


def test_assignment_with_if_match_and_stale_retry(client, editor, initialized):
    url = "/api/batches/batch-a/schedule/1/1"
    period = next(
        item
        for item in client.get("/api/batches/batch-a/schedule", headers=editor).json()
        if item["day_of_week"] == 1 and item["period_number"] == 1
    )
    version = period["version"]

    first = client.patch(
        url,
        json={"subject_id": "subject-math", "teacher_id": "teacher-1"},
        headers={**editor, "If-Match": f'"{version}"'},
    )
    assert first.status_code == 200
    assert first.json()["teacher_id"] == "teacher-1"
    assert first.json()["version"] > version

    stale = client.put(url, json={"teacher_id": "teacher-2", "expected_version": version}, headers=editor)
    assert stale.status_code == 409
    assert stale.json()["code"] == "STALE_WRITE"
    assert stale.json()["details"]["retryable"] is True

    overwrite = client.put(url, json={"teacher_id": "teacher-2"}, headers=editor)
    assert overwrite.status_code == 200
    assert overwrite.json()["teacher_id"] == "teacher-2"
    assert overwrite.json()["subject_id"] == "subject-math"


def test_disagreeing_versions_are_rejected(client, editor, initialized):
    response = client.patch(
        "/api/batches/batch-a/schedule/1/1",
        json={"teacher_id": "teacher-1", "expected_version": 1},
        headers={**editor, "If-Match": "5"},
    )

    assert response.status_code == 422
    assert response.json()["details"]["reason"] == "version_mismatch"


def test_double_booking_is_a_conflict(client, editor, initialized):
    assert client.patch(
        "/api/batches/batch-a/schedule/2/3", json={"teacher_id": "teacher-1"}, headers=editor
    ).status_code == 200

    response = client.patch("/api/batches/batch-b/schedule/2/3", json={"teacher_id": "teacher-1"}, headers=editor)

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "CONFLICT"
    assert body["details"]["conflict"]["conflicting_batch_id"] == "batch-a"

    check = client.get(
        "/api/schedule/teacher-conflicts",
        params={"teacher_id": "teacher-1", "day": 2, "start_time": "09:45", "end_time": "10:30"},
        headers=editor,
    )
    assert check.status_code == 200
    assert check.json()["conflict"]["conflicting_period_number"] == 3

    free = client.get(
        "/api/schedule/teacher-conflicts",
        params={"teacher_id": "teacher-1", "day": 2, "start_time": "10:15", "end_time": "11:00"},
        headers=editor,
    )
    assert free.json() == {"conflict": None}


def test_replace_and_clear_schedule(client, editor, initialized):
    replaced = client.put(
        "/api/batches/batch-a/schedule",
        json={
            "periods": [
                {"day_of_week": 1, "period_number": 1, "start_time": "09:00", "end_time": "09:45"},
                {"day_of_week": 3, "period_number": 1, "start_time": "09:00", "end_time": "09:45"},
            ]
        },
        headers=editor,
    )
    assert replaced.status_code == 200
    assert replaced.json()["removed"] == 48
    assert len(replaced.json()["periods"]) == 2

    for expected_removed in (2, 0):
        cleared = client.put("/api/batches/batch-a/schedule", json={"periods": []}, headers=editor)
        assert cleared.status_code == 200
        assert cleared.json()["removed"] == expected_removed
        assert cleared.json()["periods"] == []

    activity = client.get("/api/batches/batch-a/schedule/activity", headers=editor).json()
    assert [item["action"] for item in activity[:3]] == ["clear", "clear", "set"]


def test_malformed_rows_are_rejected(client, editor):
    bad_time = client.put(
        "/api/batches/batch-a/schedule",
        json={"periods": [{"day_of_week": 1, "period_number": 1, "start_time": "9:00", "end_time": "09:45"}]},
        headers=editor,
    )
    assert bad_time.status_code == 422
    assert bad_time.json()["code"] == "VALIDATION"

    overlapping = client.put(
        "/api/batches/batch-a/schedule",
        json={
            "periods": [
                {"day_of_week": 1, "period_number": 1, "start_time": "09:00", "end_time": "09:45"},
                {"day_of_week": 1, "period_number": 2, "start_time": "09:30", "end_time": "10:15"},
            ]
        },
        headers=editor,
    )
    assert overlapping.status_code == 422
    assert overlapping.json()["details"]["reason"] == "overlapping_periods"


def test_print_formats(client, editor, initialized):
    sheet = client.get("/api/batches/batch-a/schedule/print", headers=editor)
    assert sheet.json()["heading"] == "Grade 7 A"
    assert sheet.json()["columns"][:3] == ["Period", "Time", "Monday"]

    text = client.get("/api/batches/batch-a/schedule/print", params={"format": "text"}, headers=editor)
    assert text.headers["content-type"].startswith("text/plain")
    assert text.text.startswith("Grade 7 A\n")

    as_csv = client.get("/api/batches/batch-a/schedule/print", params={"format": "csv"}, headers=editor)
    assert as_csv.headers["content-type"].startswith("text/csv")
    assert as_csv.text.splitlines()[0] == "Period,Time,Monday,Tuesday,Wednesday,Thursday,Friday,Saturday"

    unknown = client.get("/api/batches/batch-a/schedule/print", params={"format": "pdf"}, headers=editor)
    assert unknown.status_code == 422


def test_writes_require_schedule_permission(client, make_headers, initialized):
    viewer = make_headers(permissions=())

    assert client.get("/api/batches/batch-a/schedule/grid", headers=viewer).status_code == 200

    denied = client.patch("/api/batches/batch-a/schedule/1/1", json={"teacher_id": "teacher-1"}, headers=viewer)
    assert denied.status_code == 403
    assert denied.json()["code"] == "PERMISSION_DENIED"

    denied = client.post(
        "/api/batches/batch-a/schedule/initialize", json={"template_id": initialized}, headers=viewer
    )
    assert denied.status_code == 403


def test_missing_or_bad_token_is_unauthenticated(client):
    assert client.get("/api/batches/batch-a/schedule").json()["code"] == "UNAUTHENTICATED"

    response = client.get("/api/batches/batch-a/schedule", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


def test_other_organization_gets_not_found(client, make_headers, initialized):
    outsider = make_headers(org="org-2", sub="someone")

    response = client.get("/api/batches/batch-a/schedule", headers=outsider)
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"

    response = client.patch("/api/batches/batch-a/schedule/1/1", json={"teacher_id": None}, headers=outsider)
    assert response.status_code == 404

    response = client.get(f"/api/period-templates/{initialized}", headers=outsider)
    assert response.status_code == 404


def test_period_payloads_carry_names(client, editor, initialized):
    assigned = client.patch(
        "/api/batches/batch-a/schedule/1/1",
        json={"subject_id": "subject-sci", "teacher_id": "teacher-2"},
        headers=editor,
    ).json()
    assert assigned["subject"] == {"id": "subject-sci", "name": "Science", "code": "SCI"}
    assert assigned["teacher"] == {"id": "teacher-2", "full_name": "Vikram Iyer"}

    grid = client.get("/api/batches/batch-a/schedule/grid", headers=editor).json()
    cell = grid["grid"]["rows"][0]["cells"][0]
    assert cell["period"]["subject"]["name"] == "Science"
    assert cell["period"]["teacher"]["full_name"] == "Vikram Iyer"
