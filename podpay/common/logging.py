"""JSON logging for the console service and scripts.

Records carry the service name and the references of the payment session the
current task is working on, so one session can be followed through a shared
log stream.
"""

import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from podpay.common.config import settings


client_reference_id_ctx: ContextVar[str] = ContextVar("client_reference_id", default="")
external_reference_id_ctx: ContextVar[str] = ContextVar("external_reference_id", default="")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(client_reference_id)s %(external_reference_id)s %(message)s"


def bind_session(client_reference_id: str, external_reference_id: str | None = None) -> None:
    """Tag log records from the current task with a session's references."""

    client_reference_id_ctx.set(client_reference_id)
    external_reference_id_ctx.set(external_reference_id or "")


class SessionContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.client_reference_id = client_reference_id_ctx.get()
        record.external_reference_id = external_reference_id_ctx.get()
        return True


def build_handler(stream=None) -> logging.Handler:
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.addFilter(SessionContextFilter())
    handler.setFormatter(
        JsonFormatter(
            LOG_FORMAT,
            rename_fields={"asctime": "ts", "levelname": "level", "name": "logger"},
            static_fields={"service": settings.service_name},
        )
    )
    return handler


def configure_logging(level: str | None = None) -> None:
    """Route the root logger to one JSON handler on stdout."""

    root = logging.getLogger()
    root.handlers = [build_handler()]
    root.setLevel(level or settings.log_level)


logger = logging.getLogger("podpay")
