# backend/spabooker/config.py

from decimal import Decimal
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]  # project root


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/spabooker.db"
    redis_url: str = "redis://localhost:6379/0"
    log_level: str = "INFO"

    # Booking policy defaults
    booking_deposit_percentage: Decimal = Decimal("50.0")
    booking_cancellation_window_hours: int = 24
    booking_late_cancellation_fee_percentage: Decimal = Decimal("100.0")
    booking_refund_deposit: bool = True
    booking_min_duration_minutes: int = 15
    booking_max_duration_minutes: int = 480
    booking_max_advance_days: int = 90
    booking_buffer_minutes: int = 0

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            # Relative SQLite paths are resolved against the project root
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url


settings = Settings()
