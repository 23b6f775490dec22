"""
Runtime configuration for PharmaDesk, read from environment variables.
"""
import os
from pathlib import Path

# config.py lives in backend/pharmadesk/; project root = parent of backend
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_DATA_DIR = PROJECT_ROOT / "data"


def _default_database_url() -> str:
    db_path = os.environ.get("SQLITE_DB_PATH", str(DEFAULT_DATA_DIR / "pharmadesk.db"))
    return f"sqlite:///{db_path}"


class Settings:
    """Environment-backed settings. Instantiate once per app (or per test)."""

    def __init__(self, **overrides):
        self.database_url: str = os.environ.get("DATABASE_URL") or _default_database_url()
        self.sql_echo: bool = os.environ.get("SQL_ECHO", "").lower() == "true"
        # SQLite busy timeout doubles as the lock-wait timeout
        self.lock_timeout_seconds: float = float(os.environ.get("LOCK_TIMEOUT_SECONDS", "5"))
        self.data_dir: Path = Path(os.environ.get("DATA_DIR", str(DEFAULT_DATA_DIR)))
        self.seed_on_startup: bool = os.environ.get("SEED_ON_STARTUP", "true").lower() == "true"
        self.log_level: str = os.environ.get("LOG_LEVEL", "INFO").upper()
        self.cors_origins: list[str] = [
            o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()
        ]
        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)
