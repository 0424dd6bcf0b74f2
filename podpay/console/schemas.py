"""Response schemas for the console payment-session endpoints."""

from datetime import datetime

from pydantic import BaseModel

from podpay.payments.models import FailureReason, PaymentSession, SessionStatus


class RetryRequest(BaseModel):
    client_reference_id: str | None = None


class SessionView(BaseModel):
    """What the console UI needs to render the payment session."""

    status: SessionStatus
    client_reference_id: str | None = None
    external_reference_id: str | None = None
    vendor: str | None = None
    redirect_url: str | None = None
    failure_reason: FailureReason | None = None
    poll_attempt_count: int = 0
    last_polled_at: datetime | None = None

    @classmethod
    def from_session(cls, session: PaymentSession | None) -> "SessionView":
        if session is None:
            return cls(status=SessionStatus.IDLE)
        return cls(
            status=session.status,
            client_reference_id=session.client_reference_id,
            external_reference_id=session.external_reference_id,
            vendor=session.vendor.value,
            redirect_url=session.redirect_url,
            failure_reason=session.failure_reason,
            poll_attempt_count=session.poll_attempt_count,
            last_polled_at=session.last_polled_at,
        )
