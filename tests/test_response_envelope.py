def test_success_response_contains_trace_id_and_success_envelope(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.headers.get("x-trace-id")

    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "ok"
    assert body["meta"]["trace_id"] == resp.headers["x-trace-id"]


def test_caller_trace_id_is_echoed(client):
    resp = client.get("/api/v1/records", headers={"x-trace-id": "trace-abc"})
    assert resp.status_code == 200
    assert resp.headers["x-trace-id"] == "trace-abc"
    assert resp.json()["meta"]["trace_id"] == "trace-abc"


def test_error_response_contains_standard_error_object(client):
    resp = client.get("/route-not-exists")
    assert resp.status_code == 404
    assert resp.headers.get("x-trace-id")

    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "REQ_NOT_FOUND"
    assert set(body["error"].keys()) >= {"code", "message", "retryable", "class"}
    assert body["meta"]["trace_id"]


def test_payload_validation_uses_request_error_code(client):
    resp = client.post("/api/v1/records/1/schedule", json={"column": "scheduleStandingVideo"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "REQ_VALIDATION_FAILED"
    assert "body.date" in resp.json()["error"]["details"]["fields"]

    resp = client.get("/api/v1/records/not-a-number")
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "REQ_VALIDATION_FAILED"


def test_domain_errors_map_to_envelope(client):
    resp = client.get("/api/v1/records/999")
    assert resp.status_code == 404
    body = resp.json()
    assert body["error"]["code"] == "NOT_FOUND"
    assert body["error"]["class"] == "validation"
    assert body["error"]["retryable"] is False
