"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_pool_size: int = 25
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "IAP Validation API"
    api_version: str = "0.1.0"
    api_description: str = "In-app purchase receipt validation for App Store and Google Play"

    # Apple App Store - verifyReceipt
    apple_shared_secret: str = ""  # App-specific shared secret, required for subscriptions
    apple_production_url: str = "https://buy.itunes.apple.com/verifyReceipt"
    apple_sandbox_url: str = "https://sandbox.itunes.apple.com/verifyReceipt"

    # Google Play - service account used against the Android Publisher API
    google_client_email: str = ""
    google_private_key: str = ""  # PEM, literal "\n" sequences are accepted
    google_token_url: str = "https://oauth2.googleapis.com/token"
    android_publisher_base_url: str = "https://androidpublisher.googleapis.com"

    # Outbound HTTP
    http_timeout_seconds: float = 5.0

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "iap-validation-api"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        Purchases cannot be deduplicated without storage, so the service
        MUST NOT start without a database.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if self.http_timeout_seconds <= 0:
            errors.append(
                f"HTTP_TIMEOUT_SECONDS must be positive, got: {self.http_timeout_seconds}"
            )

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def google_configured(self) -> bool:
        """Whether Google Play service-account credentials are present."""
        return bool(self.google_client_email and self.google_private_key)


# Global settings instance - validates at import time
settings = Settings()
