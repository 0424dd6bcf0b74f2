"""HTTP client for the payment gateway and its status service.

Vendor status strings are normalized here, once, so nothing downstream ever
branches on a vendor's vocabulary.
"""

from collections.abc import Callable
from decimal import Decimal
from typing import Any

import httpx
from pydantic import ValidationError

from podpay.common.logging import logger
from podpay.common.metrics import payment_creation_seconds
from podpay.common.tracing import get_tracer
from podpay.payments.errors import CreationError, TransientPollError
from podpay.payments.models import PaymentCreated, PollOutcome, StatusReading, Vendor


SUCCESS_STATUSES = frozenset({"success", "completed", "paid"})
FAILURE_STATUSES = frozenset({"failed", "cancelled"})


def _standard_status(raw: str) -> PollOutcome:
    value = raw.strip().lower()
    if value in SUCCESS_STATUSES:
        return PollOutcome.SUCCEEDED
    if value in FAILURE_STATUSES:
        return PollOutcome.FAILED
    return PollOutcome.PENDING


# One entry per vendor; a new vendor only needs its own mapping function here.
STATUS_NORMALIZERS: dict[Vendor, Callable[[str], PollOutcome]] = {
    Vendor.VENDOR_A: _standard_status,
    Vendor.VENDOR_B: _standard_status,
}


def normalize_status(vendor: Vendor | str, raw: str | None) -> PollOutcome:
    """Map a vendor status string onto Succeeded/Failed/Pending."""

    return STATUS_NORMALIZERS[Vendor(vendor)](raw or "")


def _first_record(payload: Any) -> dict:
    """Unwrap the console API envelope (`{"records": [...]}`) when present."""

    if not isinstance(payload, dict):
        raise ValueError("response body is not a JSON object")
    records = payload.get("records")
    if isinstance(records, list):
        if not records or not isinstance(records[0], dict):
            raise ValueError("response envelope has no records")
        return records[0]
    return payload


class PaymentGatewayClient:
    """Creates payments and reads their settlement status.

    Pure request/response: no retries happen here.
    """

    def __init__(
        self,
        base_url: str,
        api_token: str = "",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_token = api_token
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers=self._headers(),
            transport=self.transport,
        )

    async def create_payment(
        self,
        client_reference_id: str,
        awb_number: str,
        amount: Decimal,
        vendor: Vendor,
    ) -> PaymentCreated:
        """Create the remote payment and return its checkout redirect target."""

        body = {
            "client_reference_id": client_reference_id,
            "awb_number": awb_number,
            "amount": str(amount),
            "vendor": vendor.value,
        }
        with get_tracer(__name__).start_as_current_span("gateway.create_payment") as span:
            span.set_attribute("payment.client_reference_id", client_reference_id)
            span.set_attribute("payment.vendor", vendor.value)
            with payment_creation_seconds.labels(vendor=vendor.value).time():
                try:
                    async with self._client() as client:
                        resp = await client.post(f"{self.base_url}/payments/create/", json=body)
                except httpx.HTTPError as exc:
                    raise CreationError(f"payment creation request failed: {exc}") from exc

            if resp.status_code >= 400:
                logger.error(
                    "gateway rejected payment creation status_code=%s body=%s",
                    resp.status_code,
                    resp.text[:500],
                )
                raise CreationError(f"gateway rejected payment creation ({resp.status_code})")

            try:
                record = _first_record(resp.json())
                created = PaymentCreated(
                    external_reference_id=str(
                        record.get("external_reference_id") or record.get("payment_id") or ""
                    ),
                    vendor=record.get("vendor") or vendor,
                    redirect_url=record.get("redirect_url") or "",
                )
            except (ValueError, ValidationError) as exc:
                raise CreationError(f"malformed payment creation response: {exc}") from exc

            span.set_attribute("payment.external_reference_id", created.external_reference_id)
            return created

    async def query_status(self, external_reference_id: str, vendor: Vendor) -> StatusReading:
        """Ask the status service once and normalize its answer."""

        params = {"external_reference_id": external_reference_id, "vendor": vendor.value}
        with get_tracer(__name__).start_as_current_span("gateway.query_status") as span:
            span.set_attribute("payment.external_reference_id", external_reference_id)
            try:
                async with self._client() as client:
                    resp = await client.get(f"{self.base_url}/payments/status/", params=params)
            except httpx.HTTPError as exc:
                raise TransientPollError(f"status query failed: {exc}") from exc

            # A payment the status service cannot see yet is still pending.
            if resp.status_code == 404:
                return StatusReading(outcome=PollOutcome.PENDING, raw_status="not_found")
            if resp.status_code >= 400:
                raise TransientPollError(f"status service returned {resp.status_code}")

            try:
                record = _first_record(resp.json())
            except ValueError as exc:
                raise TransientPollError(f"malformed status response: {exc}") from exc

            raw = str(record.get("payment_status") or record.get("status") or "")
            span.set_attribute("payment.raw_status", raw)
            return StatusReading(outcome=normalize_status(vendor, raw), raw_status=raw)
