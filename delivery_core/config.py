# App configuration using Pydantic BaseSettings (loads from .env or defaults).

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./delivery.sqlite"

    # single fulfillment kitchen; all cutoff math is anchored here
    KITCHEN_TIME_ZONE: str = "America/Los_Angeles"
    UPCOMING_WEEKS: int = 4

    GOOGLE_MAPS_API_KEY: str | None = None
    MAPS_BASE_URL: str = "https://maps.googleapis.com/maps/api"
    MAPS_TIMEOUT_S: float = 10.0

    ETA_AVERAGE_STOP_MINUTES: float = 6.0
    ETA_USE_TIME_FACTORS: bool = True

    LOG_LEVEL: str = "INFO"

    WINDOWS_CSV: str | None = None
    STOPS_CSV: str | None = None

    class Config:
        env_file = ".env"

settings = Settings()
