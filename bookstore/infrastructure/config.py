"""Application configuration.

Loads settings from environment variables with sensible defaults.
Runtime-editable site settings (title, theme, maintenance flag...) are
not kept here; they live in the ``site_settings`` table behind
``SettingsService``.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    debug: bool = False

    # Database
    database_url: str = "postgresql+asyncpg://bookstore:bookstore_dev_password@db:5432/bookstore"
    database_create_schema: bool = False

    # Authentication
    bookstore_api_key: str = "dev-api-key-change-in-production"

    # Message broker
    broker_enabled: bool = True
    broker_backend: str = "redis"
    broker_partitions: int = 3
    redis_url: str = "redis://redis:6379/0"
    redis_stream_prefix: str = "bookstore:"
    redis_stream_max_len: int = 100_000
    producer_retries: int = 3
    consumer_group: str = "notification-consumer-group"
    consumer_concurrency: int = 3
    consumer_max_attempts: int = 3
    consumer_backoff_seconds: float = 1.0
    consumers_autostart: bool = True

    # Outbox relay
    outbox_max_attempts: int = 5
    outbox_relay_interval_seconds: float = 5.0

    # Payments
    payment_provider: str = "fake"
    stripe_secret_key: str = ""
    stripe_api_base: str = "https://api.stripe.com/v1"
    stripe_timeout_seconds: float = 10.0
    payment_currency: str = "gbp"
    payment_minimum_charge_pence: int = 30

    # Order policy
    enforce_server_total: bool = False
    enforce_forward_transitions: bool = False

    # Mail
    mail_from: str = "orders@dreambooks.example"

    # Logging
    log_level: str = "INFO"

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
