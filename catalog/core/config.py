from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App
    app_name: str = "Course Catalog"
    debug: bool = False
    environment: str = "development"  # development, production
    log_level: str = ""  # DEBUG, INFO, WARNING, ERROR, CRITICAL (empty = auto based on environment)
    log_to_file: bool = True  # Enable file logging

    # Database (SQLite for local dev, PostgreSQL for production)
    database_url: str = "sqlite:///./catalog.db"

    # Publish committed course changes to live-update subscribers
    live_updates_enabled: bool = True

    # Frontend
    frontend_url: str = "http://localhost:5173"

    # CORS (comma-separated origins, empty = local defaults)
    allowed_origins: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
