"""FieldSign settings, loaded from ``FIELDSIGN_*`` environment variables."""

from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FIELDSIGN_DIR = Path.home() / ".fieldsign"


class Settings(BaseSettings):
    """Application settings.

    Attributes:
        database_url: SQLAlchemy URL. Defaults to a SQLite file under
            ``~/.fieldsign``.
        sqlalchemy_echo: Log every SQL statement.
        date_timezone: IANA timezone used when stamping date fields.
        log_level: Root log level for the CLI and server.
    """

    model_config = SettingsConfigDict(
        env_prefix="FIELDSIGN_",
        env_file=".env",
        extra="ignore",
    )

    database_url: str = f"sqlite:///{DEFAULT_FIELDSIGN_DIR / 'fieldsign.db'}"
    sqlalchemy_echo: bool = False
    date_timezone: str = "UTC"
    log_level: str = "INFO"

    @field_validator("date_timezone")
    @classmethod
    def check_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {v}") from exc
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.date_timezone)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
