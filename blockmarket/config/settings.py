"""Configuration settings loaded from environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_lock_ttl_seconds: int = 30

    # Stripe
    stripe_secret_key: str
    stripe_webhook_secret: str = ""
    frontend_url: str = "http://localhost:3000"

    # Pricing
    platform_fee_bps: int = 1500

    # Security
    admin_user_ids_csv: str = ""

    # Logging
    log_level: str = "INFO"

    # Application
    app_name: str = "blockmarket-api"
    environment: str = "development"

    # HTTP server
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    @property
    def admin_user_ids(self) -> list[str]:
        """Parse admin user IDs from comma-separated string."""
        if not self.admin_user_ids_csv:
            return []
        return [uid.strip() for uid in self.admin_user_ids_csv.split(",") if uid.strip()]

    @property
    def checkout_success_url(self) -> str:
        """Stripe redirect after a completed checkout."""
        return f"{self.frontend_url.rstrip('/')}/checkout/success"

    @property
    def checkout_cancel_url(self) -> str:
        """Stripe redirect after an abandoned checkout."""
        return f"{self.frontend_url.rstrip('/')}/checkout/cancel"


def load_settings() -> Settings:
    """Load and validate settings from environment."""
    return Settings()  # type: ignore[call-arg]
