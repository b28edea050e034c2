"""Core configuration with Pydantic v2 Settings."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_env: str = "development"
    log_level: str = "INFO"
    enable_metrics: bool = True

    # Reminder dispatch
    REMINDER_CHANNEL: str = "dry_run"  # dry_run|textly|whatsapp
    # Fixed pause between two sends; providers throttle bursts
    REMINDER_SEND_DELAY_MS: int = 1000
    REMINDER_SEND_TIMEOUT_MS: int = 15000

    # Textly WhatsApp API
    TEXTLY_API_KEY: str = ""
    TEXTLY_BASE_URL: str = "https://api.textly.ly/api/v1/client"
    # Stripped from numbers; Textly expects local format (0912345678)
    TEXTLY_COUNTRY_CODE: str = "218"

    # Local whatsapp-web bridge
    WHATSAPP_BRIDGE_URL: str = "http://localhost:3001"

    # Directory for NDJSON dispatch transition logs; empty (default) disables the sink
    TRANSITION_LOG_DIR: str = ""


# Global settings instance
settings = Settings()
