"""Configuration management using pydantic-settings."""

from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from corpbank.auth.credentials import Credentials
from corpbank.common.errors import MalformedCredentials

DEFAULT_API_BASE_URL = "https://api.birapi.com/corpbank/aispis/v1"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CORPBANK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API credentials
    api_key_id: str | None = Field(
        default=None,
        description="API key identifier (UUID)",
    )
    api_key_secret: SecretStr | None = Field(
        default=None,
        description="API key secret (standard base64)",
    )

    # Remote service
    api_base_url: str = Field(
        default=DEFAULT_API_BASE_URL,
        description="Base URL of the CorpBank AIS/PIS API",
    )
    http_timeout: float = Field(
        default=30.0,
        description="Total timeout for API requests in seconds",
    )
    max_response_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Maximum size of a decoded API response body",
    )
    max_error_response_bytes: int = Field(
        default=4 * 1024,
        description="Maximum size of an error response body kept for diagnostics",
    )
    payment_callback_url: str | None = Field(
        default=None,
        description="Callback URL announced with payment orders",
    )

    # Bearer token verification
    max_time_diff: float = Field(
        default=600.0,
        gt=0,
        description="Allowed clock skew (seconds) between token timestamp and local time",
    )

    # Webhook server
    webhook_host: str = Field(
        default="0.0.0.0",
        description="Bind address for the webhook server",
    )
    webhook_port: int = Field(
        default=8090,
        description="Port for the webhook server",
    )
    webhook_path: str = Field(
        default="/webhooks/corpbank",
        description="Route receiving webhook notifications",
    )
    webhook_max_body_bytes: int = Field(
        default=1024 * 1024,
        description="Maximum accepted webhook request body size",
    )
    webhook_expose_errors: bool = Field(
        default=True,
        description="Include verification failure reasons in webhook responses",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Log level",
    )
    log_json: bool = Field(
        default=False,
        description="Render logs as JSON lines",
    )

    def credentials(self) -> Credentials:
        """Build API credentials from the configured key id and secret."""
        if not self.api_key_id or self.api_key_secret is None:
            raise MalformedCredentials("API key ID and secret must both be configured")
        return Credentials.parse(self.api_key_id, self.api_key_secret.get_secret_value())


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
