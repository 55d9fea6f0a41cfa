"""
Configuration management for BizLink.

Handles environment-based configuration for development and production.
"""
import os
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Debug - handle non-boolean values gracefully
    debug: bool = False

    @field_validator("debug", mode="before")
    @classmethod
    def parse_debug(cls, v):
        """Parse debug from environment, handling non-boolean values."""
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes")
        debug_env = os.getenv("DEBUG", "false").lower()
        return debug_env in ("true", "1", "yes")

    # API
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "5000"))

    # OpenAI-compatible generation provider
    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY", None)
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    openai_timeout: int = int(os.getenv("OPENAI_TIMEOUT", "120"))

    # Database
    database_path: str = os.getenv("DATABASE_PATH", str(Path.home() / ".bizlink" / "bizlink.db"))
    database_echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"

    # CORS
    cors_origins: str = os.getenv("CORS_ORIGINS", "*")  # comma-separated

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    # WebSocket liveness
    heartbeat_interval: float = float(os.getenv("HEARTBEAT_INTERVAL", "25"))
    heartbeat_timeout: float = float(os.getenv("HEARTBEAT_TIMEOUT", "60"))
    max_frame_size: int = int(os.getenv("MAX_FRAME_SIZE", str(64 * 1024)))

    # Dashboard push loop (0 disables the periodic push; on-demand still works)
    dashboard_interval: float = float(os.getenv("DASHBOARD_INTERVAL", "30"))

    # Assistant message persistence after a completed stream
    persist_retries: int = int(os.getenv("PERSIST_RETRIES", "2"))
    persist_retry_delay: float = float(os.getenv("PERSIST_RETRY_DELAY", "0.5"))

    class Config:
        # Load .env from project root (bizlink/core/config.py -> parent.parent.parent)
        env_file = str(Path(__file__).resolve().parent.parent.parent / ".env")
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()


def get_database_url() -> str:
    """Get SQLite database URL."""
    db_path = Path(settings.database_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{settings.database_path}"
