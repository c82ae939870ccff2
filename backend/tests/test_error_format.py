from typing import Dict

from fastapi.testclient import TestClient


def test_http_error_shape(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    res = client.get("/api/does-not-exist")
    assert res.status_code == 404
    body = res.json()
    assert set(body.keys()) == {"ok", "error", "message", "request_id"}
    assert body["ok"] is False
    assert body["error"] == "NotFound"
    assert body["message"] == "Not Found"


def test_wrong_method_on_subscribe(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    res = client.get("/api/subscribe")
    assert res.status_code == 405
    assert res.json()["error"] == "MethodNotAllowed"


def test_subscription_error_shape(test_app: Dict[str, object]) -> None:
    client: TestClient = test_app["client"]  # type: ignore[assignment]
    res = client.post("/api/subscribe", json={"email": "not-an-email", "token": test_app["turnstile"].issue()})
    assert res.status_code == 400
    assert set(res.json().keys()) == {"ok", "error", "message", "request_id"}
