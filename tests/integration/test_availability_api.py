SLOT_PAYLOAD = {
    "start_time": "09:00",
    "end_time": "10:00",
    "recurrence": "once",
    "specific_date": "2030-05-06",
    "capacity": 2,
    "duration_minutes": 60,
    "title": "Intake",
}


def _create_slot(client, headers, site_id="site-1", **overrides):
    return client.post(f"/api/v1/sites/{site_id}/availability", headers=headers, json={**SLOT_PAYLOAD, **overrides})


def test_staff_creates_and_reads_slot(client, auth_headers):
    staff = auth_headers("STAFF")

    created = _create_slot(client, staff)
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "active"
    assert body["booked_count"] == 0
    assert body["remaining_capacity"] == 2
    assert body["org_id"] == "org-1"
    assert body["site_id"] == "site-1"

    fetched = client.get(f"/api/v1/sites/site-1/availability/{body['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["title"] == "Intake"

    elsewhere = client.get(f"/api/v1/sites/site-2/availability/{body['id']}")
    assert elsewhere.status_code == 404
    assert elsewhere.json()["error"]["code"] == "NOT_FOUND"


def test_client_cannot_create_slot(client, auth_headers):
    response = _create_slot(client, auth_headers("CLIENT", email="someone@example.com"))

    assert response.status_code == 403


def test_create_slot_validation_error_shape(client, auth_headers):
    response = _create_slot(client, auth_headers("ADMIN"), start_time="14:00", end_time="09:00")

    assert response.status_code == 400
    body = response.json()
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["error"]["message"] == "End time must be after start time"


def test_weekly_slot_requires_day_of_week(client, auth_headers):
    response = _create_slot(client, auth_headers("STAFF"), recurrence="weekly", specific_date=None)

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "dayOfWeek is required for weekly slots"


def test_list_slots_paginates_and_scopes_to_org(client, auth_headers):
    staff = auth_headers("STAFF")
    first = _create_slot(client, staff).json()
    second = _create_slot(client, staff, start_time="11:00", end_time="12:00").json()
    _create_slot(client, auth_headers("STAFF", org_id="org-2"))

    listed = client.get("/api/v1/sites/site-1/availability", headers=staff)
    paged = client.get("/api/v1/sites/site-1/availability?limit=1&offset=1", headers=staff)

    assert listed.status_code == 200
    assert listed.json()["total"] == 2
    assert {slot["id"] for slot in listed.json()["data"]} == {first["id"], second["id"]}
    assert paged.json()["total"] == 2
    assert [slot["id"] for slot in paged.json()["data"]] == [second["id"]]


def test_list_slots_requires_authentication(client):
    response = client.get("/api/v1/sites/site-1/availability")

    assert response.status_code == 401


def test_available_slots_in_date_range(client, auth_headers):
    staff = auth_headers("STAFF")
    in_range = _create_slot(client, staff).json()
    _create_slot(client, staff, specific_date="2030-07-01")

    response = client.get("/api/v1/sites/site-1/availability/available?start_date=2030-05-01&end_date=2030-05-31")

    assert response.status_code == 200
    assert [slot["id"] for slot in response.json()["data"]] == [in_range["id"]]


def test_deactivate_slot(client, auth_headers):
    staff = auth_headers("STAFF")
    slot = _create_slot(client, staff).json()

    foreign = client.delete(
        f"/api/v1/sites/site-1/availability/{slot['id']}", headers=auth_headers("STAFF", org_id="org-2")
    )
    deactivated = client.delete(f"/api/v1/sites/site-1/availability/{slot['id']}", headers=staff)
    listed = client.get("/api/v1/sites/site-1/availability", headers=staff)

    assert foreign.status_code == 403
    assert deactivated.status_code == 200
    assert deactivated.json()["status"] == "inactive"
    assert listed.json()["total"] == 0
