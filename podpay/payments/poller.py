"""Fixed-interval status polling for one external payment reference."""

import asyncio
from collections.abc import Callable

from podpay.common.logging import logger
from podpay.common.metrics import active_status_pollers, status_poll_attempts_total, status_poll_errors_total
from podpay.payments.errors import PollerAlreadyActive, TransientPollError
from podpay.payments.gateway import PaymentGatewayClient
from podpay.payments.models import FailureReason, PollOutcome, PollResult, StatusReading, Vendor


def _discard_result(task: asyncio.Task) -> None:
    # Results of abandoned queries are dropped; retrieving the exception keeps
    # asyncio from reporting it as never retrieved.
    if not task.cancelled():
        task.exception()


class StatusPoller:
    """Drives status queries for one external reference until a terminal reading.

    Repeating mode queries immediately and then every `interval_seconds`.
    One-shot mode (`run(one_shot=True)`) waits `grace_seconds` first; a
    non-terminal answer falls through to repeating mode. Both modes give up
    with `timed_out` after `max_attempts` queries.
    """

    # Process-wide: at most one running poller per external reference.
    _active: dict[str, "StatusPoller"] = {}

    def __init__(
        self,
        gateway: PaymentGatewayClient,
        external_reference_id: str,
        vendor: Vendor,
        *,
        interval_seconds: float = 3.0,
        grace_seconds: float = 2.0,
        max_attempts: int = 100,
        on_attempt: Callable[[int], None] | None = None,
    ) -> None:
        self.gateway = gateway
        self.external_reference_id = external_reference_id
        self.vendor = vendor
        self.interval_seconds = interval_seconds
        self.grace_seconds = grace_seconds
        self.max_attempts = max_attempts
        self.on_attempt = on_attempt
        self.attempts = 0
        self._cancelled = False

    @classmethod
    def is_active(cls, external_reference_id: str) -> bool:
        return external_reference_id in cls._active

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop scheduling further queries. An in-flight query is left to finish."""

        self._cancelled = True

    async def query_once(self) -> StatusReading:
        return await self.gateway.query_status(self.external_reference_id, self.vendor)

    def _claim(self) -> None:
        owner = self._active.get(self.external_reference_id)
        if owner is not None and owner is not self:
            raise PollerAlreadyActive(f"poller already active for {self.external_reference_id}")
        self._active[self.external_reference_id] = self

    def _release(self) -> None:
        if self._active.get(self.external_reference_id) is self:
            del self._active[self.external_reference_id]

    async def _tick(self) -> StatusReading | None:
        self.attempts += 1
        status_poll_attempts_total.labels(vendor=self.vendor.value).inc()
        if self.on_attempt is not None:
            self.on_attempt(self.attempts)

        query = asyncio.ensure_future(self.query_once())
        query.add_done_callback(_discard_result)
        try:
            # Cancelling the poll loop must not cancel a dispatched request.
            return await asyncio.shield(query)
        except TransientPollError as exc:
            status_poll_errors_total.labels(vendor=self.vendor.value).inc()
            logger.warning(
                "status query failed external_reference_id=%s attempt=%s error=%s",
                self.external_reference_id,
                self.attempts,
                exc,
            )
            return None

    def _exhausted(self) -> PollResult:
        logger.warning(
            "status polling exhausted external_reference_id=%s attempts=%s",
            self.external_reference_id,
            self.attempts,
        )
        return PollResult(outcome=PollOutcome.FAILED, reason=FailureReason.TIMED_OUT, attempts=self.attempts)

    async def run(self, *, one_shot: bool = False) -> PollResult | None:
        """Poll until terminal; returns None when cancelled."""

        self._claim()
        active_status_pollers.inc()
        try:
            delay = self.grace_seconds if one_shot else 0.0
            while True:
                await asyncio.sleep(delay)
                delay = self.interval_seconds
                if self._cancelled:
                    return None
                reading = await self._tick()
                if self._cancelled:
                    return None
                if reading is None or not reading.outcome.terminal:
                    if self.attempts >= self.max_attempts:
                        return self._exhausted()
                    continue
                logger.info(
                    "status terminal external_reference_id=%s outcome=%s raw_status=%s attempts=%s",
                    self.external_reference_id,
                    reading.outcome.value,
                    reading.raw_status,
                    self.attempts,
                )
                return PollResult(
                    outcome=reading.outcome,
                    reason=FailureReason.GATEWAY_FAILED if reading.outcome is PollOutcome.FAILED else None,
                    attempts=self.attempts,
                )
        finally:
            self._release()
            active_status_pollers.dec()
