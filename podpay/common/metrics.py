"""Prometheus metric definitions for payment sessions and status polling."""

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response


payment_sessions_started_total = Counter(
    "payment_sessions_started_total",
    "Payment sessions submitted to the gateway",
    ["vendor"],
)
payment_sessions_terminal_total = Counter(
    "payment_sessions_terminal_total",
    "Payment sessions reaching a terminal state",
    ["vendor", "status", "reason"],
)
payment_sessions_resumed_total = Counter(
    "payment_sessions_resumed_total",
    "Payment sessions resumed from a durable redirect marker",
    ["vendor"],
)
payment_creation_seconds = Histogram(
    "payment_creation_seconds",
    "Latency of gateway payment creation calls",
    ["vendor"],
)
status_poll_attempts_total = Counter(
    "status_poll_attempts_total",
    "Status queries issued by pollers",
    ["vendor"],
)
status_poll_errors_total = Counter(
    "status_poll_errors_total",
    "Transient status query failures",
    ["vendor"],
)
active_status_pollers = Gauge(
    "active_status_pollers",
    "Status pollers currently running in this process",
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
