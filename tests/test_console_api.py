"""Console HTTP adapter over the payment session machine."""

import time

import pytest
from fastapi.testclient import TestClient

from conftest import VALID_REQUEST, FakeGateway, RecordingStore
from podpay.common.config import settings
from podpay.console.main import create_app
from podpay.payments.errors import CreationError
from podpay.payments.models import PollOutcome, RedirectMarker, Vendor


@pytest.fixture(autouse=True)
def fast_timers(monkeypatch):
    monkeypatch.setattr(settings, "poll_interval_seconds", 0.01)
    monkeypatch.setattr(settings, "resume_grace_seconds", 0.0)
    monkeypatch.setattr(settings, "max_poll_attempts", 50)


def wait_for_status(client: TestClient, expected: str) -> dict:
    body = {}
    for _ in range(100):
        body = client.get("/payment-session").json()
        if body["status"] == expected:
            return body
        time.sleep(0.01)
    raise AssertionError(f"session stuck in {body.get('status')}")


def test_start_returns_checkout_url_and_settles():
    gateway = FakeGateway(readings=[PollOutcome.PENDING, PollOutcome.SUCCEEDED])

    with TestClient(create_app(gateway=gateway, store=RecordingStore())) as client:
        resp = client.post("/payment-session", json=VALID_REQUEST)
        assert resp.status_code == 200
        assert resp.json()["redirect_url"] == "https://pay/E1"
        assert resp.json()["external_reference_id"] == "E1"

        body = wait_for_status(client, "Succeeded")

    assert body["client_reference_id"] == "R1"
    assert body["poll_attempt_count"] == 2


def test_invalid_start_is_bad_request_and_stays_idle():
    gateway = FakeGateway()

    with TestClient(create_app(gateway=gateway, store=RecordingStore())) as client:
        resp = client.post("/payment-session", json={**VALID_REQUEST, "amount": 0})
        assert resp.status_code == 400
        assert client.get("/payment-session").json()["status"] == "Idle"

    assert gateway.create_calls == []


def test_second_start_conflicts():
    gateway = FakeGateway()

    with TestClient(create_app(gateway=gateway, store=RecordingStore())) as client:
        assert client.post("/payment-session", json=VALID_REQUEST).status_code == 200
        resp = client.post("/payment-session", json={**VALID_REQUEST, "client_reference_id": "R2"})

    assert resp.status_code == 409
    assert gateway.create_calls == ["R1"]


def test_startup_resumes_marker_left_by_previous_process():
    store = RecordingStore(
        RedirectMarker(client_reference_id="R9", external_reference_id="E9", vendor=Vendor.VENDOR_B)
    )
    gateway = FakeGateway(readings=[PollOutcome.SUCCEEDED])

    with TestClient(create_app(gateway=gateway, store=store)) as client:
        body = wait_for_status(client, "Succeeded")

    assert body["external_reference_id"] == "E9"
    assert body["vendor"] == "VendorB"
    assert gateway.status_calls == ["E9"]
    assert store.read() is None


def test_creation_failure_then_retry_and_reset():
    gateway = FakeGateway(creation_error=CreationError("gateway down"))

    with TestClient(create_app(gateway=gateway, store=RecordingStore())) as client:
        body = client.post("/payment-session", json=VALID_REQUEST).json()
        assert body["status"] == "Failed"
        assert body["failure_reason"] == "creation_failed"

        gateway.creation_error = None
        gateway.readings = [PollOutcome.SUCCEEDED]
        resp = client.post("/payment-session/retry", json={"client_reference_id": "R1-b"})
        assert resp.status_code == 200
        assert resp.json()["client_reference_id"] == "R1-b"

        wait_for_status(client, "Succeeded")
        assert client.post("/payment-session/reset").json()["status"] == "Idle"

    assert gateway.create_calls == ["R1", "R1-b"]


def test_retry_without_failure_conflicts():
    with TestClient(create_app(gateway=FakeGateway(), store=RecordingStore())) as client:
        resp = client.post("/payment-session/retry")

    assert resp.status_code == 409


def test_cancel_replaces_session():
    gateway = FakeGateway(creation_error=CreationError("gateway down"))

    with TestClient(create_app(gateway=gateway, store=RecordingStore())) as client:
        client.post("/payment-session", json=VALID_REQUEST)
        cancelled = client.post("/payment-session/cancel").json()
        current = client.get("/payment-session").json()

    assert cancelled["status"] == "Failed"
    assert current["status"] == "Idle"


def test_health_and_metrics():
    with TestClient(create_app(gateway=FakeGateway(), store=RecordingStore())) as client:
        assert client.get("/health").json() == {"ok": True}
        metrics = client.get("/metrics")

    assert metrics.status_code == 200
    assert "status_poll_attempts_total" in metrics.text
