"""Start a payment session or reconcile one left in flight.

`start` creates the payment and opens checkout in the browser, polling until a
terminal status (or exits right after the handoff with `--detach`). `resume`
is the process-restart path: it reads the durable redirect marker and
reconciles the session through the status service.

Exit codes: 0 succeeded, 1 failed, 2 nothing to resume or detached.
"""

import argparse
import asyncio
from decimal import Decimal

from podpay.common.config import settings
from podpay.common.logging import configure_logging
from podpay.payments.errors import SessionValidationError
from podpay.payments.gateway import PaymentGatewayClient
from podpay.payments.models import SessionStatus
from podpay.payments.navigation import open_in_browser, print_and_detach
from podpay.payments.redirect_store import RedisRedirectStore
from podpay.payments.session import PaymentSessionMachine


def build_machine(detach: bool) -> PaymentSessionMachine:
    """Wire the machine against the configured gateway and Redis."""

    return PaymentSessionMachine(
        PaymentGatewayClient(
            settings.payments_api_url,
            api_token=settings.api_token,
            timeout=settings.gateway_timeout_seconds,
        ),
        RedisRedirectStore.from_url(
            settings.redis_url,
            settings.redirect_marker_key,
            settings.redirect_marker_ttl_seconds,
        ),
        print_and_detach if detach else open_in_browser,
        poll_interval_seconds=settings.poll_interval_seconds,
        resume_grace_seconds=settings.resume_grace_seconds,
        max_poll_attempts=settings.max_poll_attempts,
        redirect_ttl_seconds=settings.redirect_ttl_seconds,
        on_failed=lambda reason: print(f"Payment failed: {reason.value}"),
    )


def exit_code(status: SessionStatus) -> int:
    if status is SessionStatus.SUCCEEDED:
        return 0
    if status is SessionStatus.FAILED:
        return 1
    return 2


async def run_start(args: argparse.Namespace) -> int:
    """Create a payment and follow it until terminal or handoff."""

    machine = build_machine(args.detach)
    try:
        await machine.start(
            {
                "client_reference_id": args.client_reference_id,
                "awb_number": args.awb_number,
                "amount": args.amount,
                "vendor": args.vendor,
            }
        )
    except SessionValidationError as exc:
        print(f"Invalid payment request: {exc}")
        return 1
    try:
        status = await machine.wait()
    finally:
        machine.cancel()
    print(f"Payment session {machine.session.client_reference_id} status={status.value}")
    return exit_code(status)


async def run_resume(_: argparse.Namespace) -> int:
    """Reconcile a redirect marker left by a previous run."""

    machine = build_machine(detach=False)
    if not machine.resume():
        print("No payment redirect in flight.")
        return 2
    try:
        status = await machine.wait()
    finally:
        machine.cancel()
    print(f"Payment session {machine.session.client_reference_id} status={status.value}")
    return exit_code(status)


def main() -> None:
    """CLI entrypoint."""

    parser = argparse.ArgumentParser(description="Start or resume a console payment session.")
    parser.add_argument("--log-level", help="override LOG_LEVEL for this run")
    sub = parser.add_subparsers(dest="command", required=True)

    start = sub.add_parser("start", help="create a payment and hand off to checkout")
    start.add_argument("--client-reference-id", required=True)
    start.add_argument("--awb-number", required=True)
    start.add_argument("--amount", type=Decimal, required=True)
    start.add_argument("--vendor", choices=["VendorA", "VendorB"], required=True)
    start.add_argument("--detach", action="store_true", help="exit after the handoff; finish with `resume`")
    start.set_defaults(handler=run_start)

    resume = sub.add_parser("resume", help="reconcile a payment left in flight")
    resume.set_defaults(handler=run_resume)

    args = parser.parse_args()
    configure_logging(args.log_level)
    raise SystemExit(asyncio.run(args.handler(args)))


if __name__ == "__main__":
    main()
