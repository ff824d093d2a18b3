"""
Runtime configuration.

Everything is read from the environment (optionally seeded from a ``.env``
file) at call time, so tests can point the app at a throwaway database with
``monkeypatch.setenv``.
"""
from __future__ import annotations
import os
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

DEFAULT_JWT_SECRET = "notevault-development-secret-change-me"


class Settings:
    """Application settings snapshot."""

    def __init__(self) -> None:
        # ---- storage ----
        self.home: Path = Path(os.getenv("NOTEVAULT_HOME", str(Path.home() / ".notevault")))
        env_db = os.getenv("NOTEVAULT_DB_PATH")
        self.db_path: Path = Path(env_db) if env_db else self.home / "notevault.db"

        # ---- auth ----
        self.jwt_secret: str = os.getenv("NOTEVAULT_JWT_SECRET", DEFAULT_JWT_SECRET)
        self.jwt_expire_seconds: int = int(os.getenv("NOTEVAULT_JWT_EXPIRE_SECONDS", "604800"))  # 7 days

        # ---- logging ----
        self.log_level: str = os.getenv("NOTEVAULT_LOG_LEVEL", "INFO")
        log_file = os.getenv("NOTEVAULT_LOG_FILE")
        self.log_file: Optional[Path] = Path(log_file) if log_file else None

        # ---- server / client ----
        self.host: str = os.getenv("NOTEVAULT_HOST", "127.0.0.1")
        self.port: int = int(os.getenv("NOTEVAULT_PORT", "8000"))
        self.api_url: str = os.getenv("NOTEVAULT_API_URL", f"http://{self.host}:{self.port}")
        self.autosave_delay: float = float(os.getenv("NOTEVAULT_AUTOSAVE_DELAY", "2.0"))

    def validate(self) -> list[str]:
        """Return configuration warnings worth logging at startup."""
        warnings = []
        if self.jwt_secret == DEFAULT_JWT_SECRET:
            warnings.append("Using the default JWT secret; set NOTEVAULT_JWT_SECRET in production")
        if self.jwt_expire_seconds <= 0:
            warnings.append("NOTEVAULT_JWT_EXPIRE_SECONDS must be positive; tokens will be rejected")
        return warnings


def get_settings() -> Settings:
    return Settings()
