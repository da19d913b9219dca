"""
Application Configuration
Geozone geometry engine for the fleet management console
"""
from functools import lru_cache
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from pathlib import Path
import json

# Get the directory where config.py is located
CONFIG_DIR = Path(__file__).resolve().parent
BACKEND_DIR = CONFIG_DIR.parent.parent
ENV_FILE = BACKEND_DIR / ".env"


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Geozone - Fleet Geofence Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Geofence REST API (persistence collaborator)
    GEOFENCE_API_URL: str = "http://localhost:9090"
    GEOFENCE_API_TIMEOUT_SECONDS: float = 10.0

    # Reverse geocoding
    GOOGLE_MAPS_API_KEY: Optional[str] = None
    GEOCODE_URL: str = "https://maps.googleapis.com/maps/api/geocode/json"

    # Drawing defaults
    DEFAULT_CENTER_LAT: float = 28.6139
    DEFAULT_CENTER_LNG: float = 77.2090
    DEFAULT_CIRCLE_RADIUS_METERS: float = 1000.0
    DEFAULT_PERSISTED_RADIUS_METERS: float = 100.0  # Used when a stored circle has no radius
    DEFAULT_POLYGON_OFFSET_DEGREES: float = 0.001
    DEFAULT_GEOFENCE_COLOR: str = "#2563EB"

    # Geofence list
    DEFAULT_PAGE_LIMIT: int = 10
    MIN_PAGE_LIMIT: int = 5

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            # Handle both JSON array and comma-separated formats
            if v.startswith("["):
                return json.loads(v)
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("GEOFENCE_API_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        case_sensitive=True,
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
