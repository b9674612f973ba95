import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        session_secret: str,
        session_max_age_days: int,
        log_level: str,
        auto_create_schema: bool,
    ) -> None:
        self.database_url = database_url
        self.session_secret = session_secret
        self.session_max_age_days = session_max_age_days
        self.log_level = log_level
        self.auto_create_schema = auto_create_schema


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FLEET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("FLEET_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "fleet_expenses.db"
        database_url = f"sqlite:///{default_db}"
    session_secret = os.getenv(
        "FLEET_SESSION_SECRET",
        "5f0c2e8a9d41b7c3e6a1f8d2b9c4e7a0d3f6b1c8e5a2d9f4b7c0e3a6d1f8b2c5",
    )
    session_max_age_days = int(os.getenv("FLEET_SESSION_MAX_AGE_DAYS", "365"))
    log_level = os.getenv("FLEET_LOG_LEVEL", "INFO").upper()
    auto_create_schema = _env_flag("FLEET_AUTO_CREATE_SCHEMA", True)
    return Settings(
        database_url=database_url,
        session_secret=session_secret,
        session_max_age_days=session_max_age_days,
        log_level=log_level,
        auto_create_schema=auto_create_schema,
    )
