def test_request_id_header_is_present(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.headers.get("X-Request-ID")


def test_request_id_is_propagated_from_caller(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_metrics_endpoint_exposes_booking_counters(client, auth_headers):
    slot = client.post(
        "/api/v1/sites/site-1/availability",
        headers=auth_headers("STAFF"),
        json={
            "start_time": "09:00",
            "end_time": "10:00",
            "recurrence": "once",
            "specific_date": "2030-05-06",
            "capacity": 1,
            "duration_minutes": 60,
        },
    ).json()
    client.post(
        "/api/v1/sites/site-1/bookings",
        json={"slot_id": slot["id"], "client_name": "Metric Client", "client_email": "metric@example.com"},
    )

    response = client.get("/metrics")
    assert response.status_code == 200
    assert "text/plain" in response.headers.get("content-type", "")
    body = response.text
    assert "http_requests_total" in body
    assert "http_request_duration_seconds" in body
    assert 'booking_admissions_total{outcome="admitted"}' in body
    assert 'path="/api/v1/sites/{site_id}/availability"' in body
