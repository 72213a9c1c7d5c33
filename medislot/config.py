# medislot/config.py

from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[1]  # project root


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/sqlite/medislot.db"
    redis_url: str | None = None

    hold_ttl_seconds: int = 600
    sweep_interval_seconds: int = 60
    lock_timeout_seconds: float = 2.0
    min_advance_minutes: int = 120
    horizon_days: int = 30
    lookback_days: int = 7
    cache_ttl_seconds: int = 86400

    sweeper_enabled: bool = True
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # Relative sqlite path -> absolute, anchored at the project root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url


settings = Settings()
