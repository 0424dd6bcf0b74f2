"""Payment session value types shared by the gateway client, poller and machine."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field


class Vendor(str, Enum):
    VENDOR_A = "VendorA"
    VENDOR_B = "VendorB"


class SessionStatus(str, Enum):
    IDLE = "Idle"
    SUBMITTING = "Submitting"
    AWAITING_RETURN = "AwaitingReturn"
    POLLING = "Polling"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class PollOutcome(str, Enum):
    """Vendor-agnostic status reading."""

    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    PENDING = "Pending"

    @property
    def terminal(self) -> bool:
        return self is not PollOutcome.PENDING


class FailureReason(str, Enum):
    CREATION_FAILED = "creation_failed"
    GATEWAY_FAILED = "gateway_failed"
    TIMED_OUT = "timed_out"
    # The gateway handed back a reference another session is already polling.
    DUPLICATE_REFERENCE = "duplicate_reference"


class HandoffMode(str, Enum):
    """What a navigator did with the checkout URL.

    FULL_PAGE means this process is being left behind and the session resumes
    from the durable marker on the next start. SECONDARY means the checkout
    opened elsewhere while this process keeps running.
    """

    FULL_PAGE = "full_page"
    SECONDARY = "secondary"


class PaymentSessionRequest(BaseModel):
    """Caller input accepted by `PaymentSessionMachine.start`."""

    client_reference_id: str = Field(min_length=1)
    awb_number: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    vendor: Vendor


class PaymentCreated(BaseModel):
    """Gateway response to a successful payment creation."""

    external_reference_id: str = Field(min_length=1)
    vendor: Vendor
    redirect_url: str = Field(min_length=1)


class StatusReading(BaseModel):
    """One normalized answer from the status service."""

    outcome: PollOutcome
    raw_status: str = ""


class PollResult(BaseModel):
    """Terminal result of a poll loop."""

    outcome: PollOutcome
    reason: FailureReason | None = None
    attempts: int = 0


class RedirectMarker(BaseModel):
    """Durable record of a checkout redirect in flight."""

    client_reference_id: str = Field(min_length=1)
    external_reference_id: str = Field(min_length=1)
    vendor: Vendor


class PaymentSession(BaseModel):
    """Mutable state of one logical payment attempt."""

    client_reference_id: str
    awb_number: str = ""
    amount: Decimal | None = None
    vendor: Vendor
    external_reference_id: str | None = None
    redirect_url: str | None = None
    redirect_issued_at: datetime | None = None
    status: SessionStatus = SessionStatus.IDLE
    failure_reason: FailureReason | None = None
    poll_attempt_count: int = 0
    last_polled_at: datetime | None = None

    def marker(self) -> RedirectMarker:
        return RedirectMarker(
            client_reference_id=self.client_reference_id,
            external_reference_id=self.external_reference_id,
            vendor=self.vendor,
        )
