"""Configuration management for the Library Desk backend.

Settings are read from ``LIBRARY_DESK_*`` environment variables (and an
optional ``.env`` file) and validated with Pydantic v2. Components never read
this module directly: the server entry point builds one ``DeskConfig`` and
hands the relevant values to the objects it constructs.
"""

from decimal import Decimal
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.fine import FinePolicy


class DeskConfig(BaseSettings):
    """Library Desk configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LIBRARY_DESK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Server Metadata ===

    server_name: str = Field(
        default="library-desk",
        description="Server name announced to MCP clients",
        pattern=r"^[a-z0-9-]+$",
    )

    server_version: str = Field(
        default="0.1.0",
        description="Server version",
        pattern=r"^\d+\.\d+\.\d+(-[a-zA-Z0-9.]+)?$",
    )

    transport: str = Field(
        default="stdio",
        description="Primary transport mechanism",
        pattern=r"^(stdio|streamable_http)$",
    )

    # === Datastore ===

    database_url: str = Field(
        default="sqlite:///data/library_desk.db",
        description="SQLAlchemy database URL",
    )

    sqlite_busy_timeout: float = Field(
        default=30.0,
        description="Seconds a SQLite writer waits for a competing transaction",
        gt=0,
    )

    # === Circulation Policy ===

    default_loan_days: int = Field(
        default=14,
        description="Loan period used when an issue request has no due date",
        ge=1,
        le=365,
    )

    fine_daily_rate: Decimal = Field(
        default=Decimal("0.25"),
        description="Fine charged per overdue day",
        ge=0,
        decimal_places=2,
    )

    fine_grace_days: int = Field(
        default=0,
        description="Overdue days forgiven before a fine accrues",
        ge=0,
    )

    # === Authentication ===

    token_ttl_minutes: int = Field(
        default=7 * 24 * 60,
        description="Lifetime of an issued access token",
        ge=1,
    )

    # === Development ===

    debug: bool = Field(default=False, description="Enable debug logging")

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR)$",
    )

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Create the parent directory of a file-backed SQLite database."""
        if "://" not in v:
            raise ValueError("Database URL must include a scheme, e.g. sqlite:///library.db")
        prefix = "sqlite:///"
        if v.startswith(prefix) and ":memory:" not in v:
            Path(v[len(prefix) :]).absolute().parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("server_name")
    @classmethod
    def validate_server_name(cls, v: str) -> str:
        if len(v) < 3:
            raise ValueError("Server name must be at least 3 characters")
        if len(v) > 50:
            raise ValueError("Server name must not exceed 50 characters")
        return v

    @property
    def is_development(self) -> bool:
        return self.debug or self.log_level == "DEBUG"

    @property
    def fine_policy(self) -> FinePolicy:
        """Fine policy injected into fine settlement."""
        return FinePolicy(daily_rate=self.fine_daily_rate, grace_days=self.fine_grace_days)


class _ConfigStore:
    """Internal storage for the configuration singleton."""

    _instance: DeskConfig | None = None


def get_config() -> DeskConfig:
    """Get or create the process-wide configuration."""
    if _ConfigStore._instance is None:  # type: ignore[reportPrivateUsage]
        _ConfigStore._instance = DeskConfig()  # type: ignore[reportPrivateUsage]
    return _ConfigStore._instance  # type: ignore[reportPrivateUsage]


def reset_config() -> None:
    """Reset configuration (useful for testing)."""
    _ConfigStore._instance = None  # type: ignore[reportPrivateUsage]
