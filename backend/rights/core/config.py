"""Rights Engine Configuration

Settings for the authorization engine and its settings API.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Rights engine settings"""

    # Service Configuration
    APP_NAME: str = "Rights Engine"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database Configuration
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/rights.db"
    SEED_CATALOG: bool = True

    # CORS Configuration
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Authorization
    SETTINGS_PAGE_KEY: str = "settings"
    USER_ID_HEADER: str = "X-User-Id"

    # Timeouts (seconds)
    RESOLVE_TIMEOUT_SECONDS: float = 5.0
    MUTATION_TIMEOUT_SECONDS: float = 30.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


# Global settings instance
settings = Settings()
