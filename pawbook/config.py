"""
Client Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at import time.
"""

import sys
from decimal import Decimal
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    # Backend
    api_base_url: str = "http://127.0.0.1:3000"
    request_timeout_seconds: float = 30.0

    # Client identity
    service_name: str = "pawbook-client"
    client_version: str = "0.1.0"

    # Logging - DEBUG_MODE picks the default level, LOG_LEVEL overrides it
    debug_mode: bool = False
    log_level: str | None = None
    log_format: str = "console"  # json or console

    # Observability
    metrics_enabled: bool = True
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True

    # Credits
    max_credit_purchase: int = 100_000
    price_per_credit: Decimal = Decimal("0.01")
    currency: str = "USD"

    # Uploads
    upload_max_bytes: int = 5 * 1024 * 1024  # 5MB
    upload_allowed_types: str = "image/jpeg,image/jpg,image/png"
    upload_chunk_size: int = 64 * 1024

    # Downloads - fallback target when no save picker is available
    download_dir: Path = Path.home() / "Downloads"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def allowed_upload_types(self) -> list[str]:
        """Get normalized list of accepted upload MIME types."""
        types = []
        for content_type in self.upload_allowed_types.split(","):
            content_type = content_type.strip().lower()
            if content_type and content_type not in types:
                types.append(content_type)
        return types

    @property
    def effective_log_level(self) -> str:
        """Resolve the log level, defaulting on debug mode."""
        if self.log_level:
            return self.log_level.upper()
        return "DEBUG" if self.debug_mode else "ERROR"

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        A client pointed at a malformed backend URL would only fail on the
        first user action, far from the cause.
        """
        errors: list[str] = []

        if not self.api_base_url:
            errors.append("API_BASE_URL is required but empty or missing")
        elif not self.api_base_url.startswith(("http://", "https://")):
            errors.append(f"API_BASE_URL must be an http(s) URL, got: {self.api_base_url[:20]}...")

        if self.max_credit_purchase <= 0:
            errors.append(f"MAX_CREDIT_PURCHASE must be positive, got: {self.max_credit_purchase}")

        if self.price_per_credit <= 0:
            errors.append(f"PRICE_PER_CREDIT must be positive, got: {self.price_per_credit}")

        if self.upload_max_bytes <= 0:
            errors.append(f"UPLOAD_MAX_BYTES must be positive, got: {self.upload_max_bytes}")

        if self.log_format not in ("json", "console"):
            errors.append(f"LOG_FORMAT must be 'json' or 'console', got: {self.log_format}")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - CLIENT CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get client settings instance."""
    return settings
