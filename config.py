import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        log_level: str,
        seed_samples: bool,
        db_timeout_secs: float,
        default_user_id: str,
        port: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.log_level = log_level
        self.seed_samples = seed_samples
        self.db_timeout_secs = db_timeout_secs
        self.default_user_id = default_user_id
        self.port = port


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGETBUDDY_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "expenses.db"
    database_url = os.getenv("BUDGETBUDDY_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGETBUDDY_TIMEZONE", "UTC")
    log_level = os.getenv("BUDGETBUDDY_LOG_LEVEL", "INFO").upper()
    seed_samples = _env_flag("BUDGETBUDDY_SEED_SAMPLES", True)
    db_timeout_secs = float(os.getenv("BUDGETBUDDY_DB_TIMEOUT_SECS", "5"))
    default_user_id = os.getenv("BUDGETBUDDY_DEFAULT_USER_ID", "demo-user")
    port = int(os.getenv("BUDGETBUDDY_PORT", os.getenv("PORT", "3000")))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        log_level=log_level,
        seed_samples=seed_samples,
        db_timeout_secs=db_timeout_secs,
        default_user_id=default_user_id,
        port=port,
    )
