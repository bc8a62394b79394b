from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional
import os


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )
    # Application
    app_name: str = "SprintDesk"
    app_version: str = "1.0.0"
    debug: bool = False

    # Persistence
    store_backend: str = "sql"  # sql or json
    database_url: str = "sqlite+aiosqlite:///./sprintdesk.db"
    database_echo: bool = False
    teams_document_path: str = "./databases/db.json"
    users_document_path: str = "./databases/users.json"

    # Store I/O policy
    store_retry_attempts: int = Field(default=3, ge=0, le=10)
    store_retry_delay: float = Field(default=0.1, ge=0.0, le=10.0)  # seconds
    store_timeout: float = Field(default=5.0, gt=0.0)  # seconds

    # Authentication & Security
    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 240

    # Workflow & Scheduling
    enable_scheduled_tasks: bool = True
    sprint_rollover_time: str = "00:00"  # HH:MM, local to `timezone`
    timezone: str = "UTC"

    # Teams a user may be moved into
    valid_teams: List[str] = Field(
        default=["Grupo1", "Grupo2", "Grupo3", "Grupo4", "Admin"]
    )

    # CORS
    allowed_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"]
    )

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def rollover_hour_minute(self) -> tuple:
        """Parse `sprint_rollover_time` into (hour, minute)."""
        hour, _, minute = self.sprint_rollover_time.partition(":")
        return int(hour), int(minute or 0)


# Environment-specific configurations
class DevelopmentConfig(Settings):
    debug: bool = True
    database_echo: bool = False
    log_level: str = "DEBUG"
    secret_key: str = "dev-secret-key"


class ProductionConfig(Settings):
    debug: bool = False
    database_echo: bool = False
    log_level: str = "WARNING"


class TestingConfig(Settings):
    database_url: str = "sqlite+aiosqlite:///./test.db"
    secret_key: str = "test-secret-key"
    enable_scheduled_tasks: bool = False
    store_retry_delay: float = 0.0


def get_settings() -> Settings:
    """Factory function to get settings based on environment"""
    env = os.getenv("ENVIRONMENT", "development").lower()

    if env == "production":
        return ProductionConfig()
    elif env == "testing":
        return TestingConfig()
    else:
        return DevelopmentConfig()
