from typing import List, Optional

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings

DEFAULT_ADMIN_API_TOKEN = "change-me-admin-token"


class Settings(BaseSettings):
    # Application Information
    app_name: str = Field(default="Radiography Practice Exams")
    app_description: str = Field(
        default="Practice exam platform for radiography certification"
    )
    app_version: str = Field(default="1.0.0")
    app_url: str = Field(default="http://localhost:8000")
    debug: bool = Field(default=True)
    production: bool = Field(default=False)

    # Database Configuration
    db_host: str = Field(default="127.0.0.1")
    db_port: int = Field(default=5432)
    db_database: str = Field(default="radiography-exams")
    db_username: str = Field(default="postgres")
    db_password: str = Field(default="postgres")
    db_timezone: str = Field(default="UTC")
    database_url: Optional[str] = Field(default=None)

    # Session Configuration
    session_driver: str = Field(default="redis")
    session_cookie_name: str = Field(default="exam_session")
    session_ttl_seconds: int = Field(default=1800)

    # Security Settings
    cors_allowed_origins: List[str] = Field(default=["http://localhost:3000"])
    admin_api_token: str = Field(default=DEFAULT_ADMIN_API_TOKEN)

    # Redis
    redis_url: str = Field(default="redis://localhost:6379")
    redis_rate_limit: str = Field(default="20/minute")
    rate_limit_storage_uri: Optional[str] = Field(default=None)
    rate_limit_enabled: bool = Field(default=True)
    login_rate_limit: str = Field(default="10/minute")

    # Test progress & presence
    live_progress_window_minutes: int = Field(default=5)
    progress_stale_minutes: int = Field(default=30)
    progress_sweep_interval_minutes: int = Field(default=10)
    scheduler_enabled: bool = Field(default=True)
    presence_seen_interval_seconds: int = Field(default=60)

    # Question import
    max_upload_size_mb: int = Field(default=20)
    import_default_category: str = Field(default="General")

    # Pagination
    default_page_size: int = Field(default=20)
    max_page_size: int = Field(default=100)

    # Server
    log_dir: str = Field(default="logs")
    server_workers: int = Field(default=4)
    server_timeout_seconds: int = Field(default=120)

    # ============================
    # Generic comma-separated parser
    # ============================
    @staticmethod
    def _parse_csv(value, default):
        if isinstance(value, str):
            items = [x.strip() for x in value.split(",") if x.strip()]
            return items if items else default
        if isinstance(value, list):
            return value
        return default

    @field_validator("cors_allowed_origins", mode="before")
    def validate_cors(cls, v):
        return cls._parse_csv(v, ["http://localhost:3000"])

    @field_validator("session_driver", mode="before")
    def validate_session_driver(cls, v):
        driver = str(v or "redis").strip().lower()
        if driver not in ("redis", "memory"):
            raise ValueError("session_driver must be 'redis' or 'memory'")
        return driver

    @model_validator(mode="after")
    def require_admin_token_in_production(self):
        if self.production and self.admin_api_token == DEFAULT_ADMIN_API_TOKEN:
            raise ValueError("ADMIN_API_TOKEN must be changed when PRODUCTION is on")
        return self

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return "postgresql+psycopg2://{user}:{password}@{host}:{port}/{database}".format(
            user=self.db_username,
            password=self.db_password,
            host=self.db_host,
            port=self.db_port,
            database=self.db_database,
        )

    @property
    def limiter_storage_uri(self) -> str:
        return self.rate_limit_storage_uri or self.redis_url

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


def load_settings():
    try:
        settings = Settings()
        print("✅ Settings loaded successfully!")
        return settings
    except ValidationError as e:
        print("❌ Validation Error:", e)
        raise


settings = load_settings()
