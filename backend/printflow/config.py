"""Application configuration."""
from pydantic_settings import BaseSettings
from functools import lru_cache


DEFAULT_STATUS_LABELS: dict[str, str] = {
    "pending-design": "New جديد",
    "pending-production": "Working on it اشتغل عليه",
    "in-production": "Working on it اشتغل عليه",
    "completed": "Done تم",
}

DEFAULT_LABEL_ALIASES: dict[str, str] = {
    # Bilingual board labels
    "new جديد": "pending-design",
    "working on it اشتغل عليه": "in-production",
    "done تم": "completed",
    "stuck متوقف": "pending-production",
    # Plain variants
    "new": "pending-design",
    "جديد": "pending-design",
    "working on it": "in-production",
    "اشتغل عليه": "in-production",
    "done": "completed",
    "تم": "completed",
    "stuck": "pending-production",
    "متوقف": "pending-production",
}


class Settings(BaseSettings):
    """Application settings."""

    # App
    APP_NAME: str = "printflow"
    ENV: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Database (document store)
    DATABASE_URL: str = "sqlite:///./printflow.db"
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 10
    # Local runs only; deployments apply alembic migrations.
    DATABASE_AUTO_CREATE: bool = False

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"
    # Run enqueued sync jobs inline (local development and tests).
    CELERY_TASK_ALWAYS_EAGER: bool = False

    # JWT (tokens are issued by the external auth provider)
    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_LEEWAY_SECONDS: int = 30

    # Order intake webhook
    WEBHOOK_API_KEY: str | None = None
    INTAKE_DELIVERY_LEAD_DAYS: int = 7

    # Monday.com API
    MONDAY_API_URL: str = "https://api.monday.com/v2"
    MONDAY_API_VERSION: str = "2024-10"
    MONDAY_TIMEOUT_SECONDS: float = 15.0
    MONDAY_STATUS_COLUMN_ID: str = "status"
    MONDAY_ORDER_ID_COLUMN_ID: str = "order_id"
    MONDAY_DELIVERY_DATE_COLUMN_ID: str = "delivery_date"
    # System status -> board label; JSON in the environment.
    MONDAY_STATUS_LABELS: dict[str, str] = DEFAULT_STATUS_LABELS
    # Board label (normalized) -> system status; JSON in the environment.
    MONDAY_LABEL_ALIASES: dict[str, str] = DEFAULT_LABEL_ALIASES

    # Reject status moves that go backwards through the lifecycle.
    ENFORCE_FORWARD_STATUS: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
