"""
Configuration - Configuración
Settings read from environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the application."""

    database_path: str = "workforce.db"
    sql_debug: bool = False
    keys_dir: str = "."
    photo_storage_dir: str = "fotos_verificacion"
    timezone: str = "America/Argentina/Buenos_Aires"
    log_level: str = "INFO"

    # PIN kiosk lockout
    pin_max_attempts: int = 3
    pin_lockout_minutes: int = 15

    # Back-office login lockout
    login_max_attempts: int = 5
    login_lockout_seconds: int = 300

    facial_confidence_threshold: float = 0.60

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the process environment."""
        return cls(
            database_path=os.environ.get("DATABASE_PATH", "workforce.db"),
            sql_debug=_env_bool("SQL_DEBUG"),
            keys_dir=os.environ.get("KEYS_DIR", "."),
            photo_storage_dir=os.environ.get("PHOTO_STORAGE_DIR", "fotos_verificacion"),
            timezone=os.environ.get("TIMEZONE", "America/Argentina/Buenos_Aires"),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            pin_max_attempts=int(os.environ.get("PIN_MAX_ATTEMPTS", "3")),
            pin_lockout_minutes=int(os.environ.get("PIN_LOCKOUT_MINUTES", "15")),
            login_max_attempts=int(os.environ.get("LOGIN_MAX_ATTEMPTS", "5")),
            login_lockout_seconds=int(os.environ.get("LOGIN_LOCKOUT_SECONDS", "300")),
            facial_confidence_threshold=float(os.environ.get("FACIAL_CONFIDENCE_THRESHOLD", "0.60")),
        )

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.database_path}"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the process-wide Settings instance."""
    global _settings

    if _settings is None:
        _settings = Settings.from_env()

    return _settings


def reset_settings() -> None:
    """Forget cached settings (for testing purposes)."""
    global _settings
    _settings = None
