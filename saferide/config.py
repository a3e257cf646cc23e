import base64
import json
import logging
import os
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ==========================================================================
    # Firebase Configuration
    # ==========================================================================
    firebase_service_account_json: Optional[str] = None
    firebase_service_account_path: Optional[str] = None
    firebase_project_id: Optional[str] = None

    # ==========================================================================
    # MongoDB Configuration
    # ==========================================================================
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "saferide"
    mongodb_timeout_ms: int = 5000

    # ==========================================================================
    # Redis Configuration (request locks during match formation)
    # ==========================================================================
    redis_url: Optional[str] = None
    request_lock_ttl_seconds: int = 15

    # ==========================================================================
    # Geocoding
    # ==========================================================================
    nominatim_url: str = "https://nominatim.openstreetmap.org"
    geocoder_user_agent: str = "saferide-matching"
    geocoder_timeout_seconds: float = 5.0

    # ==========================================================================
    # Notifications
    # ==========================================================================
    push_notifications_enabled: bool = True
    notification_timeout_seconds: float = 5.0

    # ==========================================================================
    # Matching Defaults
    # ==========================================================================
    max_origin_distance_m: float = 500.0
    max_destination_distance_m: float = 1000.0
    max_time_difference_minutes: int = 30
    min_match_score: int = 60

    # ==========================================================================
    # Cost Estimation (BDT)
    # ==========================================================================
    base_fare: float = 50.0
    per_km_rate: float = 30.0
    large_vehicle_multiplier: float = 1.5
    large_vehicle_seat_threshold: int = 3

    # ==========================================================================
    # Match Lifecycle
    # ==========================================================================
    confirmation_timeout_minutes: int = 30
    confirmation_reminder_minutes: int = 5
    max_write_retries: int = 3

    # Sweep intervals (minutes)
    expire_matches_interval_minutes: int = 30
    confirmation_timeout_interval_minutes: int = 15
    confirmation_reminder_interval_minutes: int = 5
    request_cleanup_interval_minutes: int = 60

    # ==========================================================================
    # Application Settings
    # ==========================================================================
    api_v1_str: str = "/api/v1"
    debug: bool = False
    log_level: str = "INFO"
    cors_origins: str = "*"
    scheduler_enabled: bool = True

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse comma-separated CORS origins into list."""
        if self.cors_origins == "*":
            return ["*"]
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def firebase_credentials(self) -> Optional[dict]:
        """
        Get Firebase credentials as dict.

        Supports:
        1. File path (FIREBASE_SERVICE_ACCOUNT_PATH)
        2. JSON string (FIREBASE_SERVICE_ACCOUNT_JSON)
        3. Base64 encoded JSON string (FIREBASE_SERVICE_ACCOUNT_JSON)
        """
        if self.firebase_service_account_path:
            if os.path.exists(self.firebase_service_account_path):
                try:
                    with open(self.firebase_service_account_path, "r") as f:
                        return json.load(f)
                except (OSError, json.JSONDecodeError) as e:
                    logger.error(f"Error reading Firebase credentials file: {e}")
                    return None

        if self.firebase_service_account_json:
            content = self.firebase_service_account_json.strip()

            if content.startswith("{"):
                try:
                    return json.loads(content)
                except json.JSONDecodeError:
                    pass  # Move to Base64 attempt

            try:
                decoded = base64.b64decode(content).decode("utf-8")
                return json.loads(decoded)
            except (ValueError, UnicodeDecodeError):
                logger.error(
                    "Failed to decode FIREBASE_SERVICE_ACCOUNT_JSON (Invalid JSON or Base64)"
                )
                return None

        return None

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", case_sensitive=False
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to avoid re-reading env vars on every request.
    """
    return Settings()


# Convenience export
settings = get_settings()
