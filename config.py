from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # Service settings
    service_name: str = "hotel-booking"
    service_version: str = "1.0.0"
    log_level: str = "INFO"

    # MongoDB settings
    database_url: Optional[str] = None
    database_name: Optional[str] = None

    # Auth settings
    session_ttl_hours: int = 24
    password_salt: str = "hotel_booking_salt"
    default_admin_username: str = "admin"
    default_admin_password: str = "admin123"

    # Bookings
    enforce_status_transitions: bool = True

    # Client settings
    api_url: str = "http://localhost:8000"

    # CORS settings
    cors_origins: list[str] = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
