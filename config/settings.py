"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # SUPABASE
    # ===================
    supabase_url: Optional[str] = Field(
        None,
        description="Supabase project URL"
    )
    supabase_key: Optional[str] = Field(
        None,
        description="Supabase anon/public key"
    )

    # ===================
    # TELEGRAM
    # ===================
    telegram_bot_token: Optional[str] = Field(
        None,
        description="Telegram bot token from @BotFather"
    )
    telegram_chat_id: Optional[str] = Field(
        None,
        description="Telegram chat ID for import notifications"
    )

    # ===================
    # IMPORT DEFAULTS
    # ===================
    import_default_mode: str = Field(
        default="create_or_update",
        pattern="^(create_only|update_existing|create_or_update)$",
        description="Conflict policy used when the caller does not pick one"
    )
    auto_generate_parents: bool = Field(
        default=True,
        description="Infer parent products from SKU prefix / name similarity"
    )
    assign_barcodes: bool = Field(
        default=True,
        description="Assign pool barcodes to variants that have none"
    )
    max_import_rows: int = Field(
        default=20000,
        ge=1,
        le=200000,
        description="Reject uploads with more data rows than this"
    )
    upload_dir: str = Field(
        default="uploads/imports",
        description="Directory for temporary uploaded catalog files"
    )
    preview_ttl_minutes: int = Field(
        default=30,
        ge=1,
        le=1440,
        description="How long a dry-run preview can be confirmed"
    )

    # ===================
    # BARCODE POOL
    # ===================
    barcode_type: str = Field(
        default="EAN13",
        description="Barcode type claimed from the pool"
    )
    barcode_low_water_mark: int = Field(
        default=100,
        ge=0,
        description="Pool is reported unhealthy below this many available barcodes"
    )
    barcode_high_assignment_rate: float = Field(
        default=90.0,
        ge=0,
        le=100,
        description="Warn when this percentage of the pool is assigned"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def supabase_configured(self) -> bool:
        """Check if Supabase credentials are present."""
        return bool(self.supabase_url and self.supabase_key)

    @property
    def telegram_configured(self) -> bool:
        """Check if Telegram is properly configured."""
        return bool(self.telegram_bot_token and self.telegram_chat_id)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If env vars are invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
