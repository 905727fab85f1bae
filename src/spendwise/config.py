"""Configuration management for Spendwise."""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Spendwise REST API
    spendwise_api_url: str = "http://localhost:4000/api"
    spendwise_access_token: str | None = None
    request_timeout: float = 30.0

    # Group used when a command is run without an explicit group id
    spendwise_group_id: str | None = None

    # Display
    currency_symbol: str = "₹"

    # Balances within this distance of zero count as settled
    settled_epsilon: Decimal = Decimal("0.005")


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check your environment and .env file "
            f"(see .env.example for reference).\n"
            f"Error: {e}"
        ) from e
