"""Shared fakes for payment session tests."""

import os

# Keep tracing local during tests; must be set before podpay settings load.
os.environ.setdefault("OTEL_EXPORTER_OTLP_ENDPOINT", "")

import pytest

from podpay.payments.errors import CreationError
from podpay.payments.models import HandoffMode, PaymentCreated, PollOutcome, StatusReading
from podpay.payments.navigation import RedirectCapture
from podpay.payments.redirect_store import InMemoryRedirectStore
from podpay.payments.session import PaymentSessionMachine


class FakeGateway:
    """Scripted gateway: each status query pops the next reading or error."""

    def __init__(self, readings=(), creation_error: CreationError | None = None) -> None:
        self.readings = list(readings)
        self.creation_error = creation_error
        self.create_calls: list[str] = []
        self.status_calls: list[str] = []

    async def create_payment(self, client_reference_id, awb_number, amount, vendor):
        self.create_calls.append(client_reference_id)
        if self.creation_error is not None:
            raise self.creation_error
        number = len(self.create_calls)
        return PaymentCreated(
            external_reference_id=f"E{number}",
            vendor=vendor,
            redirect_url=f"https://pay/E{number}",
        )

    async def query_status(self, external_reference_id, vendor):
        self.status_calls.append(external_reference_id)
        item = self.readings.pop(0) if self.readings else PollOutcome.PENDING
        if isinstance(item, Exception):
            raise item
        return StatusReading(outcome=item, raw_status=item.value.lower())


class RecordingStore(InMemoryRedirectStore):
    """In-memory store that counts writes and clears."""

    def __init__(self, marker=None) -> None:
        super().__init__(marker)
        self.writes = 0
        self.clears = 0

    def write(self, marker) -> None:
        self.writes += 1
        super().write(marker)

    def clear(self) -> None:
        self.clears += 1
        super().clear()


VALID_REQUEST = {
    "client_reference_id": "R1",
    "awb_number": "AWB1",
    "amount": 100,
    "vendor": "VendorA",
}


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def make_machine():
    """Build a machine with zero-delay timers unless overridden."""

    def _make(gateway, store, navigator=None, **overrides) -> PaymentSessionMachine:
        options = {
            "poll_interval_seconds": 0.0,
            "resume_grace_seconds": 0.0,
            "max_poll_attempts": 20,
            "redirect_ttl_seconds": 900,
        }
        options.update(overrides)
        return PaymentSessionMachine(
            gateway,
            store,
            navigator or RedirectCapture(HandoffMode.SECONDARY),
            **options,
        )

    return _make
