"""Central environment-driven settings for the console service and scripts.

Loaded once per process. Every field can be overridden through an environment
variable of the same name (upper-cased) or a local `.env` file.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "podpay-console"
    log_level: str = "INFO"
    redis_url: str = "redis://localhost:6379/0"
    payments_api_url: str = "https://productionv36.qikpod.com/payments"
    api_token: str = ""
    gateway_timeout_seconds: float = 5.0
    poll_interval_seconds: float = 3.0
    resume_grace_seconds: float = 2.0
    max_poll_attempts: int = 100
    redirect_ttl_seconds: int = 900
    redirect_marker_key: str = "podpay:payment_redirect"
    redirect_marker_ttl_seconds: int = 86400
    otel_exporter_otlp_endpoint: str = "http://localhost:4318/v1/traces"
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
