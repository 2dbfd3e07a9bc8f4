"""
Core settings and environment variables for Location Tracker.
Uses pydantic-settings for type-safe environment variable loading.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Create a .env file in the root directory to configure these.
    """

    # Application
    APP_NAME: str = "Location Tracker API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS - comma separated frontend origins allowed to call the API
    FRONTEND_URL: str = "http://localhost:5173"

    # IP geolocation chain (provider ids, tried in this order)
    IP_PROVIDER_ORDER: str = "ipapi.co,ip-api.com,ipwhois.app"
    IP_PROVIDER_TIMEOUT_SECONDS: float = 5.0

    # Reverse geocoding (OpenStreetMap Nominatim)
    GEOCODE_URL: str = "https://nominatim.openstreetmap.org/reverse"
    GEOCODE_USER_AGENT: str = "LocationTrackerApp/1.0"
    GEOCODE_TIMEOUT_SECONDS: float = 10.0

    # Device position request
    GPS_TIMEOUT_SECONDS: float = 15.0
    GPS_MAX_CACHED_AGE_SECONDS: float = 300.0

    # Client side (CLI) - backend API and last-resort direct lookup
    API_BASE_URL: str = "http://localhost:5000/api"
    CLIENT_TIMEOUT_SECONDS: float = 10.0
    PUBLIC_IP_URL: str = "https://api.ipify.org?format=json"
    CLIENT_DIRECT_URL: str = "https://ipapi.co"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"

    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.FRONTEND_URL.split(",") if origin.strip()]


@dataclass(frozen=True)
class ResolverConfig:
    """
    Explicit configuration handed to the resolver and its adapters.

    The resolution core never reads Settings or the environment itself;
    callers build one of these (usually via from_settings) and pass it in.
    """

    ip_provider_order: Tuple[str, ...] = ("ipapi.co", "ip-api.com", "ipwhois.app")
    ip_provider_timeout: float = 5.0
    client_timeout: float = 10.0
    geocode_url: str = "https://nominatim.openstreetmap.org/reverse"
    geocode_user_agent: str = "LocationTrackerApp/1.0"
    geocode_timeout: float = 10.0
    gps_high_accuracy: bool = True
    gps_timeout: float = 15.0
    gps_max_cached_age: float = 300.0
    api_base_url: str = "http://localhost:5000/api"
    public_ip_url: str = "https://api.ipify.org?format=json"
    client_direct_url: str = "https://ipapi.co"
    # None means the network default (no explicit timeout) for the direct lookup
    client_direct_timeout: Optional[float] = None

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ResolverConfig":
        order = tuple(p.strip() for p in settings.IP_PROVIDER_ORDER.split(",") if p.strip())
        return cls(
            ip_provider_order=order,
            ip_provider_timeout=settings.IP_PROVIDER_TIMEOUT_SECONDS,
            client_timeout=settings.CLIENT_TIMEOUT_SECONDS,
            geocode_url=settings.GEOCODE_URL,
            geocode_user_agent=settings.GEOCODE_USER_AGENT,
            geocode_timeout=settings.GEOCODE_TIMEOUT_SECONDS,
            gps_timeout=settings.GPS_TIMEOUT_SECONDS,
            gps_max_cached_age=settings.GPS_MAX_CACHED_AGE_SECONDS,
            api_base_url=settings.API_BASE_URL.rstrip("/"),
            public_ip_url=settings.PUBLIC_IP_URL,
            client_direct_url=settings.CLIENT_DIRECT_URL,
        )


# Global settings instance
settings = Settings()
