"""Startup-time helpers for safe config logging."""

from podpay.common.config import Settings
from podpay.common.logging import logger


SECRET_MARKERS = ("key", "secret", "password", "token")


def redacted_config(config: Settings, fields: list[str]) -> dict[str, str]:
    """Return selected settings as strings, masking secret-like field names."""

    values = config.model_dump()
    result = {}
    for name in fields:
        if name not in values:
            result[name] = "<unset>"
        elif any(marker in name.lower() for marker in SECRET_MARKERS):
            result[name] = "<redacted>" if values[name] else "<empty>"
        else:
            result[name] = str(values[name])
    return result


def log_startup_config(config: Settings, fields: list[str]) -> None:
    """Log selected startup settings for quick troubleshooting."""

    logger.info(
        "startup_config=%s",
        {"service": config.service_name, **redacted_config(config, fields)},
    )
