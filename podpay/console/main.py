"""HTTP surface for the console's payment session.

A thin adapter: it only reads session state and calls the machine's public
methods. App startup is the process start that reconciles a checkout redirect
left in flight by a previous process.
"""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, HTTPException, Request

from podpay.common.config import settings
from podpay.common.logging import configure_logging, logger
from podpay.common.metrics import metrics_response
from podpay.common.startup import log_startup_config
from podpay.common.tracing import instrument_app, setup_tracing
from podpay.console.schemas import RetryRequest, SessionView
from podpay.payments.errors import InvalidTransition, PollerAlreadyActive, SessionValidationError
from podpay.payments.gateway import PaymentGatewayClient
from podpay.payments.navigation import RedirectCapture
from podpay.payments.redirect_store import RedirectStore, RedisRedirectStore
from podpay.payments.session import PaymentSessionMachine

configure_logging()
setup_tracing(settings.service_name, settings.otel_exporter_otlp_endpoint)
log_startup_config(
    settings,
    [
        "payments_api_url",
        "api_token",
        "redis_url",
        "poll_interval_seconds",
        "resume_grace_seconds",
        "max_poll_attempts",
    ],
)


def create_app(
    gateway: PaymentGatewayClient | None = None,
    store: RedirectStore | None = None,
) -> FastAPI:
    """Build the console app; collaborators default to the configured ones."""

    gateway = gateway or PaymentGatewayClient(
        settings.payments_api_url,
        api_token=settings.api_token,
        timeout=settings.gateway_timeout_seconds,
    )
    store = store or RedisRedirectStore.from_url(
        settings.redis_url,
        settings.redirect_marker_key,
        settings.redirect_marker_ttl_seconds,
    )

    def new_machine() -> PaymentSessionMachine:
        # The server outlives the browser's trip to checkout, so polling starts
        # right away; the marker covers server restarts.
        return PaymentSessionMachine(
            gateway,
            store,
            RedirectCapture(),
            poll_interval_seconds=settings.poll_interval_seconds,
            resume_grace_seconds=settings.resume_grace_seconds,
            max_poll_attempts=settings.max_poll_attempts,
            redirect_ttl_seconds=settings.redirect_ttl_seconds,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Resume any in-flight redirect on startup; tear the session down on exit."""

        app.state.machine = new_machine()
        if app.state.machine.resume():
            logger.info("resumed payment session from redirect marker")
        yield
        app.state.machine.cancel()

    app = FastAPI(title="Podpay Console", lifespan=lifespan)
    instrument_app(app)

    def machine(request: Request) -> PaymentSessionMachine:
        return request.app.state.machine

    def view(request: Request) -> SessionView:
        return SessionView.from_session(machine(request).session)

    @app.post("/payment-session", response_model=SessionView)
    async def start_session(request: Request, payload: dict[str, Any] = Body(...)):
        """Create the payment and return the checkout redirect target."""

        try:
            await machine(request).start(payload)
        except SessionValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except (InvalidTransition, PollerAlreadyActive) as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return view(request)

    @app.get("/payment-session", response_model=SessionView)
    def get_session(request: Request):
        """Current session status for the console to render."""

        return view(request)

    @app.post("/payment-session/retry", response_model=SessionView)
    async def retry_session(request: Request, req: RetryRequest | None = None):
        """Retry a failed session."""

        try:
            await machine(request).retry(req.client_reference_id if req else None)
        except (InvalidTransition, PollerAlreadyActive) as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return view(request)

    @app.post("/payment-session/cancel", response_model=SessionView)
    def cancel_session(request: Request):
        """Abandon the session; a fresh one replaces it."""

        current = machine(request)
        current.cancel()
        cancelled = SessionView.from_session(current.session)
        request.app.state.machine = new_machine()
        return cancelled

    @app.post("/payment-session/reset", response_model=SessionView)
    def reset_session(request: Request):
        """Clear a terminal session so another can start."""

        try:
            machine(request).reset()
        except InvalidTransition as exc:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        return view(request)

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        """Container health probe endpoint."""

        return {"ok": True}

    return app


app = create_app()
