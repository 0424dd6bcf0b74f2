"""Payment session lifecycle.

Owns one logical payment attempt: creation with the gateway, the checkout
handoff, the durable redirect marker and status reconciliation. Presentation
code only reads `status` and calls `start`, `retry`, `cancel` and `reset`.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from podpay.common.logging import bind_session, logger
from podpay.common.metrics import (
    payment_sessions_resumed_total,
    payment_sessions_started_total,
    payment_sessions_terminal_total,
)
from podpay.common.state_machine import validate_transition
from podpay.payments.errors import CreationError, InvalidTransition, PollerAlreadyActive, SessionValidationError
from podpay.payments.gateway import PaymentGatewayClient
from podpay.payments.models import (
    FailureReason,
    HandoffMode,
    PaymentSession,
    PaymentSessionRequest,
    PollOutcome,
    PollResult,
    SessionStatus,
)
from podpay.payments.poller import StatusPoller
from podpay.payments.redirect_store import RedirectStore


Navigator = Callable[[str], HandoffMode]


class PaymentSessionMachine:
    """State machine for one payment session at a time."""

    def __init__(
        self,
        gateway: PaymentGatewayClient,
        store: RedirectStore,
        navigator: Navigator,
        *,
        poll_interval_seconds: float = 3.0,
        resume_grace_seconds: float = 2.0,
        max_poll_attempts: int = 100,
        redirect_ttl_seconds: float = 900,
        on_succeeded: Callable[[], None] | None = None,
        on_failed: Callable[[FailureReason], None] | None = None,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.navigator = navigator
        self.poll_interval_seconds = poll_interval_seconds
        self.resume_grace_seconds = resume_grace_seconds
        self.max_poll_attempts = max_poll_attempts
        self.redirect_ttl_seconds = redirect_ttl_seconds
        self.on_succeeded = on_succeeded
        self.on_failed = on_failed
        self.session: PaymentSession | None = None
        self._poller: StatusPoller | None = None
        self._poll_task: asyncio.Task | None = None
        self._generation = 0
        self._disposed = False

    @property
    def status(self) -> SessionStatus:
        return self.session.status if self.session is not None else SessionStatus.IDLE

    # -- public contract -------------------------------------------------

    async def start(self, request: PaymentSessionRequest | dict[str, Any]) -> None:
        """Validate input, create the remote payment and hand off to checkout.

        Raises `SessionValidationError` before anything is awaited when the
        input is unusable; the status then stays `Idle`.
        """

        self._ensure_usable()
        if self.status is not SessionStatus.IDLE:
            raise InvalidTransition(f"start is not allowed while {self.status.value}")
        req = self._validate(request)
        self.session = PaymentSession(
            client_reference_id=req.client_reference_id,
            awb_number=req.awb_number,
            amount=req.amount,
            vendor=req.vendor,
        )
        self._bind_log_context()
        await self._submit()

    async def retry(self, client_reference_id: str | None = None) -> None:
        """Re-enter checkout after `Failed`.

        Reuses the existing reference and redirect URL while the URL is still
        fresh; otherwise a new attempt is created under `client_reference_id`
        (generated when omitted).
        """

        self._ensure_usable()
        session = self.session
        if session is None or session.status is not SessionStatus.FAILED:
            raise InvalidTransition(f"retry is only allowed after Failed, not {self.status.value}")

        if self._redirect_reusable(session):
            if StatusPoller.is_active(session.external_reference_id):
                raise PollerAlreadyActive(f"poller already active for {session.external_reference_id}")
            session.failure_reason = None
            session.poll_attempt_count = 0
            session.last_polled_at = None
            self._bind_log_context()
            logger.info("retrying payment with existing reference")
            self._hand_off()
            return

        if session.amount is None or not session.awb_number:
            # Resumed sessions only know their references, not the order.
            raise InvalidTransition("session has no order details to mint a new attempt; reset and start again")
        self.session = PaymentSession(
            client_reference_id=client_reference_id or f"{session.client_reference_id}-{uuid4().hex[:8]}",
            awb_number=session.awb_number,
            amount=session.amount,
            vendor=session.vendor,
            status=SessionStatus.FAILED,
        )
        self._bind_log_context()
        logger.info("retrying payment as new attempt previous=%s", session.client_reference_id)
        await self._submit()

    def resume(self) -> bool:
        """Reconcile a checkout redirect left in flight by a previous process.

        Must be called from a running event loop. Returns True when a session
        was resumed and one-shot polling scheduled.
        """

        self._ensure_usable()
        marker = self.store.read()
        if marker is None:
            return False
        if self.session is not None and self.session.external_reference_id == marker.external_reference_id:
            return False
        if self.status is not SessionStatus.IDLE:
            logger.warning(
                "redirect marker ignored while another session is %s external_reference_id=%s",
                self.status.value,
                marker.external_reference_id,
            )
            return False
        if StatusPoller.is_active(marker.external_reference_id):
            return False

        self.store.clear()
        self.session = PaymentSession(
            client_reference_id=marker.client_reference_id,
            external_reference_id=marker.external_reference_id,
            vendor=marker.vendor,
        )
        self._bind_log_context()
        payment_sessions_resumed_total.labels(vendor=marker.vendor.value).inc()
        self._transition(SessionStatus.POLLING, "resumed_from_marker")
        self._start_poller(one_shot=True)
        return True

    def cancel(self) -> None:
        """Tear down: stop polling and drop any response still in flight.

        The redirect marker survives only while awaiting the checkout return.
        The machine cannot be used afterwards.
        """

        if self._disposed:
            return
        self._disposed = True
        self._generation += 1
        if self._poller is not None:
            self._poller.cancel()
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        if self.status is not SessionStatus.AWAITING_RETURN:
            self._clear_marker()
        logger.info("payment session cancelled status=%s", self.status.value)

    def reset(self) -> None:
        """Forget a terminal session so a new one can start."""

        self._ensure_usable()
        if self.session is None:
            return
        self._transition(SessionStatus.IDLE, "reset")
        self.session = None
        self._poller = None
        self._poll_task = None

    async def wait(self) -> SessionStatus:
        """Wait for the current poll loop, if any, and return the status."""

        task = self._poll_task
        if task is not None:
            await asyncio.wait({task})
        return self.status

    # -- internals -------------------------------------------------------

    def _ensure_usable(self) -> None:
        if self._disposed:
            raise InvalidTransition("payment session was cancelled")

    def _stale(self, generation: int) -> bool:
        return self._disposed or generation != self._generation

    @staticmethod
    def _validate(request: PaymentSessionRequest | dict[str, Any]) -> PaymentSessionRequest:
        if isinstance(request, PaymentSessionRequest):
            return request
        try:
            return PaymentSessionRequest.model_validate(request)
        except ValidationError as exc:
            raise SessionValidationError(str(exc)) from exc

    def _bind_log_context(self) -> None:
        bind_session(self.session.client_reference_id, self.session.external_reference_id)

    def _transition(self, new_status: SessionStatus, reason: str) -> None:
        session = self.session
        from_status = session.status
        validate_transition(from_status, new_status)
        session.status = new_status
        logger.info(
            "session transition client_reference_id=%s from=%s to=%s reason=%s",
            session.client_reference_id,
            from_status.value,
            new_status.value,
            reason,
        )

    def _redirect_reusable(self, session: PaymentSession) -> bool:
        if not (session.external_reference_id and session.redirect_url and session.redirect_issued_at):
            return False
        age = datetime.now(timezone.utc) - session.redirect_issued_at
        return age < timedelta(seconds=self.redirect_ttl_seconds)

    async def _submit(self) -> None:
        session = self.session
        generation = self._generation
        self._transition(SessionStatus.SUBMITTING, "submit")
        payment_sessions_started_total.labels(vendor=session.vendor.value).inc()
        try:
            created = await self.gateway.create_payment(
                session.client_reference_id,
                session.awb_number,
                session.amount,
                session.vendor,
            )
        except CreationError as exc:
            if self._stale(generation):
                return
            logger.error("payment creation failed: %s", exc)
            # The marker is only written after a successful creation.
            self._fail(FailureReason.CREATION_FAILED, clear_marker=False)
            return
        if self._stale(generation):
            return

        if created.vendor is not session.vendor:
            logger.warning(
                "gateway echoed vendor=%s for session vendor=%s",
                created.vendor.value,
                session.vendor.value,
            )
        session.external_reference_id = created.external_reference_id
        session.redirect_url = created.redirect_url
        session.redirect_issued_at = datetime.now(timezone.utc)
        self._bind_log_context()
        self._hand_off()

    def _hand_off(self) -> None:
        session = self.session
        if StatusPoller.is_active(session.external_reference_id):
            # The marker belongs to whoever is polling; leave it alone.
            logger.warning(
                "reference already polled by another session external_reference_id=%s",
                session.external_reference_id,
            )
            self._fail(FailureReason.DUPLICATE_REFERENCE, clear_marker=False)
            return
        try:
            self.store.write(session.marker())
        except Exception:
            logger.exception("redirect marker write failed")
            self._fail(FailureReason.CREATION_FAILED, clear_marker=False)
            return
        self._transition(SessionStatus.AWAITING_RETURN, "redirect_issued")
        mode = self.navigator(session.redirect_url)
        if mode is HandoffMode.SECONDARY and not self._disposed:
            self._transition(SessionStatus.POLLING, "checkout_in_process")
            self._start_poller(one_shot=False)

    def _record_attempt(self, attempt: int) -> None:
        self.session.poll_attempt_count = attempt
        self.session.last_polled_at = datetime.now(timezone.utc)

    def _start_poller(self, *, one_shot: bool) -> None:
        session = self.session
        poller = StatusPoller(
            self.gateway,
            session.external_reference_id,
            session.vendor,
            interval_seconds=self.poll_interval_seconds,
            grace_seconds=self.resume_grace_seconds,
            max_attempts=self.max_poll_attempts,
            on_attempt=self._record_attempt,
        )
        self._poller = poller
        self._poll_task = asyncio.get_running_loop().create_task(
            self._run_poller(poller, one_shot, self._generation)
        )

    async def _run_poller(self, poller: StatusPoller, one_shot: bool, generation: int) -> None:
        try:
            result = await poller.run(one_shot=one_shot)
        except PollerAlreadyActive:
            if self._stale(generation):
                return
            logger.warning(
                "reference claimed by another poller external_reference_id=%s",
                poller.external_reference_id,
            )
            self._fail(FailureReason.DUPLICATE_REFERENCE, clear_marker=False)
            return
        except Exception:
            if self._stale(generation):
                return
            logger.exception("status poller stopped unexpectedly")
            result = PollResult(
                outcome=PollOutcome.FAILED,
                reason=FailureReason.TIMED_OUT,
                attempts=poller.attempts,
            )
        if result is None or self._stale(generation):
            return
        if result.outcome is PollOutcome.SUCCEEDED:
            self._succeed()
        else:
            self._fail(result.reason or FailureReason.GATEWAY_FAILED, clear_marker=True)

    def _succeed(self) -> None:
        session = self.session
        self._transition(SessionStatus.SUCCEEDED, "gateway_succeeded")
        self._clear_marker()
        payment_sessions_terminal_total.labels(
            vendor=session.vendor.value,
            status=SessionStatus.SUCCEEDED.value,
            reason="none",
        ).inc()
        self._notify(self.on_succeeded)

    def _fail(self, reason: FailureReason, clear_marker: bool) -> None:
        session = self.session
        # A reused redirect is handed off again straight from Failed.
        if session.status is not SessionStatus.FAILED:
            self._transition(SessionStatus.FAILED, reason.value)
        session.failure_reason = reason
        if clear_marker:
            self._clear_marker()
        payment_sessions_terminal_total.labels(
            vendor=session.vendor.value,
            status=SessionStatus.FAILED.value,
            reason=reason.value,
        ).inc()
        self._notify(self.on_failed, reason)

    def _clear_marker(self) -> None:
        # The outcome stands; a leftover marker is reconciled again on the next resume.
        try:
            self.store.clear()
        except Exception:
            logger.exception("redirect marker clear failed")

    @staticmethod
    def _notify(callback: Callable[..., None] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("payment session callback failed")
