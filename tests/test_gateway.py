"""Gateway client request shapes, response parsing and status normalization."""

import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from podpay.payments.errors import CreationError, TransientPollError
from podpay.payments.gateway import PaymentGatewayClient, normalize_status
from podpay.payments.models import PollOutcome, Vendor


BASE_URL = "https://console.test/payments"


def make_client(handler) -> PaymentGatewayClient:
    return PaymentGatewayClient(BASE_URL, api_token="tok", transport=httpx.MockTransport(handler))


def create(client: PaymentGatewayClient):
    return asyncio.run(client.create_payment("R1", "AWB1", Decimal("100.50"), Vendor.VENDOR_A))


def query(client: PaymentGatewayClient, vendor: Vendor = Vendor.VENDOR_A):
    return asyncio.run(client.query_status("E1", vendor))


def test_create_payment_sends_order_and_reads_redirect():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"external_reference_id": "E1", "vendor": "VendorA", "redirect_url": "https://pay/E1"},
        )

    created = create(make_client(handler))

    assert created.external_reference_id == "E1"
    assert created.redirect_url == "https://pay/E1"
    assert created.vendor is Vendor.VENDOR_A
    assert seen["path"] == "/payments/payments/create/"
    assert seen["auth"] == "Bearer tok"
    assert seen["body"] == {
        "client_reference_id": "R1",
        "awb_number": "AWB1",
        "amount": "100.50",
        "vendor": "VendorA",
    }


def test_create_payment_unwraps_records_envelope():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "status": "success",
                "status_code": 200,
                "message": "created",
                "records": [{"payment_id": 42, "redirect_url": "https://pay/42"}],
            },
        )

    created = create(make_client(handler))

    assert created.external_reference_id == "42"
    assert created.vendor is Vendor.VENDOR_A


def test_missing_redirect_url_is_creation_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"external_reference_id": "E1", "vendor": "VendorA"})

    with pytest.raises(CreationError):
        create(make_client(handler))


def test_gateway_rejection_is_creation_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(CreationError):
        create(make_client(handler))


def test_network_failure_is_creation_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CreationError):
        create(make_client(handler))


def test_query_status_normalizes_payment_status():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"payment_status": "PAID"})

    reading = query(make_client(handler), Vendor.VENDOR_B)

    assert reading.outcome is PollOutcome.SUCCEEDED
    assert reading.raw_status == "PAID"
    assert seen["params"] == {"external_reference_id": "E1", "vendor": "VendorB"}


def test_query_status_reads_first_record():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "success", "records": [{"payment_status": "cancelled"}]})

    assert query(make_client(handler)).outcome is PollOutcome.FAILED


def test_unknown_payment_reads_as_pending():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"status": "failure", "message": "Records not found."})

    assert query(make_client(handler)).outcome is PollOutcome.PENDING


def test_status_service_errors_are_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    with pytest.raises(TransientPollError):
        query(make_client(handler))


def test_unparsable_status_body_is_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>maintenance</html>")

    with pytest.raises(TransientPollError):
        query(make_client(handler))


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("success", PollOutcome.SUCCEEDED),
        ("Completed", PollOutcome.SUCCEEDED),
        (" paid ", PollOutcome.SUCCEEDED),
        ("failed", PollOutcome.FAILED),
        ("CANCELLED", PollOutcome.FAILED),
        ("pending", PollOutcome.PENDING),
        ("initiated", PollOutcome.PENDING),
        ("", PollOutcome.PENDING),
        (None, PollOutcome.PENDING),
    ],
)
def test_normalize_status(raw, expected):
    assert normalize_status("VendorA", raw) is expected
    assert normalize_status(Vendor.VENDOR_B, raw) is expected
