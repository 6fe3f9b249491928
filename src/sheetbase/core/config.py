from enum import Enum
from pathlib import Path

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE = ".env"


class _EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=ENV_FILE, env_file_encoding="utf-8", extra="ignore")


class AppSettings(_EnvSettings):
    APP_NAME: str = "sheetbase"
    APP_DESCRIPTION: str = "Runtime-defined tables with schema evolution, import and export"
    APP_VERSION: str = "0.1.0"
    HOST: str = "127.0.0.1"
    PORT: int = 8000


class EnvironmentOption(str, Enum):
    LOCAL = "local"
    STAGING = "staging"
    PRODUCTION = "production"


class EnvironmentSettings(_EnvSettings):
    ENVIRONMENT: EnvironmentOption = EnvironmentOption.LOCAL


class DatabaseSettings(_EnvSettings):
    SQLITE_PATH: str = "./data/sheetbase.db"
    SQLITE_POOL_SIZE: int = Field(default=5, ge=1)
    SQLITE_POOL_TIMEOUT: float = Field(default=30.0, gt=0)
    SQLITE_BUSY_TIMEOUT: float = Field(default=5.0, gt=0)
    SQLITE_JOURNAL_MODE: str = "WAL"
    SQLITE_ECHO: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLITE_ASYNC_URL(self) -> str:
        return f"sqlite+aiosqlite:///{self.SQLITE_PATH}"

    def ensure_directory(self) -> None:
        Path(self.SQLITE_PATH).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


class QuerySettings(_EnvSettings):
    DEFAULT_PAGE_SIZE: int = Field(default=20, ge=1)
    MAX_PAGE_SIZE: int = Field(default=1000, ge=1)


class LoggingSettings(_EnvSettings):
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str | None = "./logs/app.log"
    LOG_FILE_MAX_BYTES: int = 10 * 1024 * 1024
    LOG_FILE_BACKUP_COUNT: int = 5


class Settings(
    AppSettings,
    EnvironmentSettings,
    DatabaseSettings,
    QuerySettings,
    LoggingSettings,
):
    pass


settings = Settings()
