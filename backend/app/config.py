"""Application configuration management."""

import json
import logging
from typing import Dict, List

from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.debug and self.log_level.upper() != "TRACE":
            self.log_level = "DEBUG"

    # Database
    database_url: str

    # Security
    encryption_key: str = ""  # Fernet key; when set, TOGGL_TEAM tokens are encrypted
    encrypted_tokens: bool = False

    # CORS
    cors_origins: str = "http://localhost:5173"

    # Application
    debug: bool = False
    log_level: str = "INFO"
    api_v1_str: str = "/api/v1"

    # Toggl upstream
    toggl_api_base: str = "https://api.track.toggl.com/api/v9"
    toggl_timeout_seconds: float = 30.0
    toggl_team: str = "[]"  # JSON: [{"name": "Ana", "token": "..."}]
    member_aliases: str = "{}"  # JSON: {"Rahman": "Rehman"}

    # Quota lock
    quota_lock_key: str = "toggl-global"
    quota_lock_seconds_402: int = 3600
    quota_lock_seconds_429: int = 300

    # Caching
    snapshot_ttl_seconds: int = 600
    snapshot_purge_grace_seconds: int = 86400
    idempotency_ttl_seconds: int = 600

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def member_aliases_map(self) -> Dict[str, str]:
        """Parse alias -> canonical member name mapping."""
        try:
            parsed = json.loads(self.member_aliases or "{}")
        except ValueError:
            log.warning("MEMBER_ALIASES is not valid JSON, ignoring it")
            return {}
        if not isinstance(parsed, dict):
            return {}
        return {
            str(alias).strip(): str(canonical).strip()
            for alias, canonical in parsed.items()
            if str(alias).strip() and str(canonical).strip()
        }


# Global settings instance
settings = Settings()
