from datetime import timedelta, timezone, tzinfo
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./stall.db"
    access_key: str | None = None
    allow_origins: list[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]
    line_channel_access_token: str | None = None
    line_target_ids: list[str] = Field(default_factory=list)
    log_level: str = "INFO"

    # Bahrain has no DST, a fixed offset is enough.
    utc_offset_hours: float = 3.0
    day_cutoff_hour: int = 5

    thermos_capacity_ml: int = 3000
    thermos_stale_minutes: int = 40
    low_stock_threshold: float = 20
    breakeven_default_target: float = 100
    alert_ttl_seconds: int = 30
    archive_after_days: int = 30
    archive_batch_limit: int = 500
    idle_separator_minutes: int = 2
    ledger_max_attempts: int = 25

    class Config:
        env_file = ".env"

    @field_validator("line_target_ids", "allow_origins", mode="before")
    @classmethod
    def split_csv(cls, value):
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        if value is None:
            return []
        return value

    @property
    def local_tz(self) -> tzinfo:
        return timezone(timedelta(hours=self.utc_offset_hours))


@lru_cache
def get_settings() -> Settings:
    return Settings()
