"""Application configuration using Pydantic Settings."""
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    app_name: str = "GNDU Attendance"
    debug: bool = False

    # MongoDB
    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db_name: str = "attendance"
    mongodb_timeout_ms: int = 5000

    # JWT
    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60
    jwt_refresh_token_expire_days: int = 30

    # Seeded admin (only created when no user with this email exists)
    admin_email: str = "admin@gndu.ac.in"
    admin_password: str = "change-me"
    admin_full_name: str = "Attendance Admin"

    # Campus geofence
    university_lat: float = 31.634801
    university_lng: float = 74.824416
    allowed_radius_meters: float = 200

    # Device location acquisition
    location_max_retries: int = 3
    location_retry_delay_seconds: float = 2.0
    location_timeout_seconds: float = 15.0

    # Sessions
    session_duration_minutes: int = 120
    secret_code_length: int = 6
    checkin_base_url: str = "http://localhost:3000/checkin"

    # Live dashboard feed
    live_poll_interval_seconds: float = 2.0

    # Student ids that always take the last roll numbers, e.g. ["17032400065"]
    pinned_last_student_ids: list[str] = Field(default_factory=list)

    # CORS (comma-separated origins)
    cors_origins: str = "http://localhost:3000"

    @model_validator(mode="after")
    def _validate_production_secrets(self):
        if not self.debug:
            if self.jwt_secret_key in ("change-me-in-production", ""):
                raise ValueError(
                    "JWT_SECRET_KEY must be set to a strong secret when DEBUG is not enabled. "
                    "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
                )
        return self


settings = Settings()
