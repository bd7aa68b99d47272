def test_health_endpoints(client):
    live = client.get("/api/health")
    assert live.status_code == 200
    assert live.json()["status"] == "ok"
    assert "x-process-time-ms" in live.headers

    ready = client.get("/api/health/ready")
    assert ready.status_code == 200
    payload = ready.json()
    assert payload["status"] == "ok"
    assert payload["database"]["ok"] is True
    assert payload["database"]["missing_tables"] == []


def test_oversized_request_is_rejected(client, make_headers):
    response = client.put(
        "/api/batches/batch-a/schedule",
        content=b" " * 1_000_001,
        headers={**make_headers(), "Content-Type": "application/json"},
    )

    assert response.status_code == 413
    assert response.json()["details"]["max_bytes"] == 1_000_000
