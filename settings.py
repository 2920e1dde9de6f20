import os
from functools import lru_cache
from typing import List, Optional


class Settings:
    """Application settings read from the environment"""

    # App settings
    APP_NAME: str = "Course Portal API"
    APP_VERSION: str = "1.0.0"

    # Server settings
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    DEBUG: bool = os.getenv("DEBUG", "False").lower() == "true"
    CORS_ORIGINS: List[str] = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

    # Database settings
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "course_portal")

    # Auth settings
    SECRET_KEY: str = os.getenv("SECRET_KEY", "dev-secret-key-change-me")
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_HOURS: int = int(os.getenv("JWT_EXPIRES_HOURS", "24"))
    BCRYPT_ROUNDS: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Seeded admin account
    ADMIN_EMAIL: str = os.getenv("ADMIN_EMAIL", "admin@portal.com")
    ADMIN_PASSWORD: str = os.getenv("ADMIN_PASSWORD", "admin123")

    # Course settings
    ENROLLMENT_KEY_LENGTH: int = int(os.getenv("ENROLLMENT_KEY_LENGTH", "8"))

    # Logging settings
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FILE: Optional[str] = os.getenv("LOG_FILE")
    LOG_JSON: bool = os.getenv("LOG_JSON", "False").lower() == "true"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
