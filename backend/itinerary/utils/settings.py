from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_env: str = Field(default="dev", alias="APP_ENV")
    redis_url: str = Field(default="redis://redis:6379/0", alias="REDIS_URL")
    allowed_origins: str = Field(default="http://localhost:5173", alias="ALLOWED_ORIGINS")

    feature_google_routes: bool = Field(default=True, alias="FEATURE_GOOGLE_ROUTES")
    google_routes_api_key: str | None = Field(default=None, alias="GOOGLE_ROUTES_API_KEY")
    google_maps_api_key: str | None = Field(default=None, alias="GOOGLE_MAPS_API_KEY")
    google_routing_preference: str = Field(default="TRAFFIC_AWARE", alias="GOOGLE_ROUTING_PREFERENCE")
    google_travel_mode: str = Field(default="DRIVE", alias="GOOGLE_TRAVEL_MODE")
    google_timeout_seconds: int = Field(default=20, ge=1, alias="GOOGLE_TIMEOUT_SECONDS")
    google_max_attempts: int = Field(default=3, ge=1, le=10, alias="GOOGLE_MAX_ATTEMPTS")
    google_cache_ttl_seconds: int = Field(default=300, ge=0, alias="GOOGLE_CACHE_TTL_SECONDS")
    google_departure_lead_seconds: int = Field(default=300, ge=0, alias="GOOGLE_DEPARTURE_LEAD_SECONDS")

    default_parking_buffer_min: int = Field(default=10, ge=0, alias="DEFAULT_PARKING_BUFFER_MIN")
    default_activity_duration_min: int = Field(default=60, ge=0, alias="DEFAULT_ACTIVITY_DURATION_MIN")
    history_limit: int = Field(default=5, ge=0, alias="HISTORY_LIMIT")

    @field_validator("google_routes_api_key", "google_maps_api_key", mode="before")
    @classmethod
    def _normalize_optional_secret(cls, value: object) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @field_validator("google_routing_preference", "google_travel_mode", mode="before")
    @classmethod
    def _normalize_enum_strings(cls, value: object) -> str:
        return str(value or "").strip().upper()

    @property
    def cors_origins(self) -> list[str]:
        return [item.strip() for item in self.allowed_origins.split(",") if item.strip()]

    @property
    def resolved_google_routes_api_key(self) -> str | None:
        return self.google_routes_api_key or self.google_maps_api_key

    @property
    def resolved_google_routing_preference(self) -> str:
        return self.google_routing_preference or "TRAFFIC_AWARE"

    @property
    def is_production_mode(self) -> bool:
        return str(self.app_env or "").strip().lower() in {"prod", "production"}

    @model_validator(mode="after")
    def _validate_required_production_settings(self) -> "Settings":
        if self.google_travel_mode not in {"DRIVE", "WALK", "TRANSIT", "BICYCLE", "TWO_WHEELER"}:
            raise ValueError(f"GOOGLE_TRAVEL_MODE is not a Routes API travel mode: {self.google_travel_mode}")

        if not self.is_production_mode:
            return self

        if self.feature_google_routes and not self.resolved_google_routes_api_key:
            raise ValueError("GOOGLE_ROUTES_API_KEY (or GOOGLE_MAPS_API_KEY) is required when FEATURE_GOOGLE_ROUTES=true.")

        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
