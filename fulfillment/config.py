from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str

    # Database Connection Pool Settings
    DB_POOL_SIZE: int = 10  # Base number of connections in pool
    DB_MAX_OVERFLOW: int = 20  # Extra connections allowed beyond pool_size
    DB_POOL_TIMEOUT: int = 30  # Seconds to wait for connection from pool
    DB_POOL_RECYCLE: int = 1800  # Recycle connections after 30 minutes

    # App Settings
    APP_NAME: str = "Van Fleet Fulfillment Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # CORS - accepts JSON string, comma-separated, or list
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    # OpenRouteService (routing, optimization, reverse geocoding)
    ORS_API_KEY: str = ""
    ORS_BASE_URL: str = "https://api.openrouteservice.org"
    ORS_PROFILE: str = "driving-car"
    ROUTING_TIMEOUT_SECONDS: float = 15.0

    # Working window for planned movements
    WORK_TIMEZONE: str = "Asia/Riyadh"
    WORK_START_HOUR: int = 8
    WORK_END_HOUR: int = 17
    WORK_WEEKEND_DAY: int = 4  # datetime.weekday(): 4 = Friday

    # Candidate generation / scoring
    ALLOCATION_MAX_CANDIDATES: int = 5
    ALLOCATION_DEFAULT_UNIT_VOLUME_CC: float = 1000.0
    ALLOCATION_MIN_SPLIT_RATIO: float = 0.2  # 20% of requested quantity
    ALLOCATION_MIN_SPLIT_ABSOLUTE: int = 5  # 5 units
    ALLOCATION_SAFETY_MARGIN_MINUTES: int = 5
    VAN_UNLOAD_HANDLING_SECONDS: float = 300.0  # single unload at client
    WAREHOUSE_PICKUP_HANDLING_SECONDS: float = 600.0  # load at warehouse + unload at client
    HANDLING_NORMALIZATION_SECONDS: float = 600.0  # 10 min cap

    # Background auto-allocation
    AUTO_ALLOCATE_ENABLED: bool = False
    AUTO_ALLOCATE_INTERVAL_MINUTES: int = 15
    AUTO_ALLOCATE_BATCH_SIZE: int = 50

    @field_validator('CORS_ORIGINS', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [origin.strip() for origin in v.split(',')]
        return v

    @field_validator('WORK_WEEKEND_DAY')
    @classmethod
    def validate_weekend_day(cls, v):
        if not 0 <= v <= 6:
            raise ValueError("WORK_WEEKEND_DAY must be between 0 (Monday) and 6 (Sunday)")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
