"""Environment-driven settings for the checkout service.

The app factory builds one immutable instance at startup and passes it to each
component explicitly (see `.env.example`).
"""

from typing import Literal

from pydantic import AliasChoices, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "checkout"
    log_level: str = "INFO"
    flow_api_key: str
    flow_secret_key: SecretStr
    flow_base_url: str = Field(
        default="https://sandbox.flow.cl/api",
        validation_alias=AliasChoices("flow_base_url", "flow_sandbox_url"),
    )
    app_base_url: str
    database_url: str | None = None
    gateway_timeout_seconds: float = 10.0
    payment_subject: str = "Test product purchase"
    status_query_policy: Literal["store_first", "gateway_always"] = "store_first"
    otel_exporter_otlp_endpoint: str | None = None
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", frozen=True)

    @field_validator("flow_base_url", "app_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    def secret_bytes(self) -> bytes:
        """Raw shared secret used for request signing."""

        return self.flow_secret_key.get_secret_value().encode("utf-8")
