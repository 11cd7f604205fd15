"""
Centralized configuration management for the performance appraisal service.

Provides environment-specific configuration with validation, type safety,
and settings management using Pydantic.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class DatabaseConfig(BaseSettings):
    """
    Database configuration settings.

    Handles both SQLite and MySQL configurations with validation
    and connection URL generation.

    Example:
        >>> db_config = DatabaseConfig(backend="sqlite", sqlite_path="./test.db")
        >>> print(db_config.get_connection_url())
        >>> # sqlite:///./test.db
    """

    backend: Literal["sqlite", "mysql"] = Field("sqlite", description="Database backend type")

    # SQLite settings
    sqlite_path: str | None = Field("./appraisal.db", description="SQLite database file path")

    # MySQL settings
    mysql_host: str | None = Field("localhost", description="MySQL host")
    mysql_port: int | None = Field(3306, ge=1, le=65535, description="MySQL port")
    mysql_user: str | None = Field("root", description="MySQL username")
    mysql_password: str | None = Field("", description="MySQL password")
    mysql_database: str | None = Field("appraisal", description="MySQL database name")
    mysql_charset: str = Field("utf8mb4", description="MySQL character set")

    # Connection settings
    pool_pre_ping: bool = Field(True, description="Enable connection pool pre-ping")
    pool_recycle: int = Field(3600, ge=60, description="Connection pool recycle time (seconds)")
    echo: bool = Field(False, description="Enable SQL query logging")

    model_config = {"env_prefix": "DB_", "case_sensitive": False}

    @field_validator("sqlite_path")
    def validate_sqlite_path(cls, v):
        """Validate SQLite path and ensure directory exists."""
        if v and v != ":memory:":
            path = Path(v)
            path.parent.mkdir(parents=True, exist_ok=True)
            if not path.suffix:
                v = str(path.with_suffix(".db"))
        return v

    @model_validator(mode="after")
    def validate_mysql_config(self):
        """Validate MySQL configuration completeness."""
        if self.backend == "mysql":
            missing = []
            if not self.mysql_host:
                missing.append("mysql_host")
            if not self.mysql_user:
                missing.append("mysql_user")
            if not self.mysql_database:
                missing.append("mysql_database")
            if missing:
                raise ValueError(f"MySQL backend requires: {', '.join(missing)}")
        return self

    def get_connection_url(self) -> str:
        """
        Generate database connection URL.

        Raises:
            ValueError: If backend is unsupported
        """
        if self.backend == "sqlite":
            return f"sqlite:///{self.sqlite_path}"
        elif self.backend == "mysql":
            password_part = f":{self.mysql_password}" if self.mysql_password else ""
            return (
                f"mysql+pymysql://{self.mysql_user}{password_part}@{self.mysql_host}:"
                f"{self.mysql_port}/{self.mysql_database}?charset={self.mysql_charset}"
            )
        else:
            raise ValueError(f"Unsupported database backend: {self.backend}")

    def get_engine_options(self) -> dict[str, Any]:
        """Get SQLAlchemy engine options."""
        return {
            "echo": self.echo,
            "future": True,
            "pool_pre_ping": self.pool_pre_ping,
            "pool_recycle": self.pool_recycle,
        }


class LoggingConfig(BaseSettings):
    """
    Logging settings.

    Fields left unset in the environment take the defaults of the running
    environment (see :meth:`for_environment`), so ``APP_ENVIRONMENT=testing``
    alone gives a quiet test run while ``LOG_LEVEL=DEBUG`` still wins.
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Minimum logging level"
    )
    file_path: str | None = Field("./logs/appraisal.log", description="Log file path")
    max_bytes: int = Field(10 * 1024 * 1024, ge=1024, description="Max log file size in bytes")
    backup_count: int = Field(5, ge=1, description="Number of rotated log files kept")
    structured: bool = Field(True, description="Use structured JSON logging on the console")
    console_enabled: bool = Field(True, description="Enable console output")

    model_config = {"env_prefix": "LOG_", "case_sensitive": False}

    def for_environment(self, environment: str, debug: bool = False) -> LoggingConfig:
        defaults = dict(ENVIRONMENT_LOGGING.get(environment, {}))
        if debug:
            defaults["level"] = "DEBUG"
        update = {k: v for k, v in defaults.items() if k not in self.model_fields_set}
        return self.model_copy(update=update)


ENVIRONMENT_LOGGING: dict[str, dict[str, Any]] = {
    "development": {"level": "DEBUG", "structured": False},
    "production": {"level": "INFO", "console_enabled": False},
    "testing": {"level": "WARNING", "file_path": None, "console_enabled": False},
}


class ScoringConfig(BaseSettings):
    """
    Score aggregation and ranking settings.

    Thresholds are inclusive lower bounds, checked from S down to C; anything
    below ``rank_c`` is ranked D.

    Example:
        >>> cfg = ScoringConfig()
        >>> cfg.rank_thresholds()
        [('S', 4.5), ('A', 4.0), ('B', 3.0), ('C', 2.0)]
    """

    warning_penalty: float = Field(0.5, ge=0, description="Deduction per warning on record")
    max_score: int = Field(5, ge=1, description="Canonical scale ceiling for a question")
    decimal_places: int = Field(2, ge=0, le=6, description="Rounding for stored scores")

    rank_s: float = Field(4.50, description="Lower bound for rank S")
    rank_a: float = Field(4.00, description="Lower bound for rank A")
    rank_b: float = Field(3.00, description="Lower bound for rank B")
    rank_c: float = Field(2.00, description="Lower bound for rank C")

    model_config = {"env_prefix": "SCORING_", "case_sensitive": False}

    @model_validator(mode="after")
    def validate_thresholds(self):
        """Thresholds must be strictly descending so ranks partition the scale."""
        bounds = [self.rank_s, self.rank_a, self.rank_b, self.rank_c]
        if any(hi <= lo for hi, lo in zip(bounds, bounds[1:])):
            raise ValueError("Rank thresholds must be strictly descending (S > A > B > C)")
        if self.rank_c < 0:
            raise ValueError("Rank thresholds must be non-negative")
        return self

    def rank_thresholds(self) -> list[tuple[str, float]]:
        return [("S", self.rank_s), ("A", self.rank_a), ("B", self.rank_b), ("C", self.rank_c)]


class WorkflowConfig(BaseSettings):
    """
    Approval workflow settings.

    ``empty_slot_markers`` lists the directory values that mean "no approver
    in this slot" in addition to null.
    """

    empty_slot_markers: list[str] = Field(["", "-"], description="Values treated as empty slots")
    reviewers_must_score: bool = Field(
        False, description="Require manager/gm to score every question before approving"
    )
    max_note_length: int = Field(2000, ge=50, description="Maximum approval note length")
    max_reason_length: int = Field(2000, ge=50, description="Maximum rejection reason length")
    max_comment_length: int = Field(2000, ge=50, description="Maximum response comment length")

    model_config = {"env_prefix": "WORKFLOW_", "case_sensitive": False}


class ApplicationConfig(BaseSettings):
    """
    Main application configuration.

    Example:
        >>> config = get_settings()
        >>> print(config.app.environment)
    """

    environment: Literal["development", "testing", "production"] = Field(
        "development", description="Application environment"
    )
    debug: bool = Field(False, description="Enable debug mode")
    title: str = Field("Performance Appraisal Service", description="Service title")
    version: str = Field("0.1.0", description="Application version")

    host: str = Field("0.0.0.0", description="HTTP bind address")
    port: int = Field(8000, ge=1, le=65535, description="HTTP port")

    model_config = {"env_prefix": "APP_", "case_sensitive": False}

    @model_validator(mode="after")
    def debug_implies_development(self):
        """Ensure debug mode is only enabled in development."""
        if self.debug and self.environment == "production":
            raise ValueError("Debug mode cannot be enabled in production")
        return self


class Settings:
    """
    Complete application settings container.

    Provides structured access to all configuration sections
    with lazy loading and caching.

    Example:
        >>> settings = get_settings()
        >>> print(settings.database.get_connection_url())
        >>> print(settings.scoring.warning_penalty)
    """

    def __init__(self):
        self._app: ApplicationConfig | None = None
        self._database: DatabaseConfig | None = None
        self._logging: LoggingConfig | None = None
        self._scoring: ScoringConfig | None = None
        self._workflow: WorkflowConfig | None = None

    @property
    def app(self) -> ApplicationConfig:
        """Get application configuration."""
        if self._app is None:
            self._app = ApplicationConfig()
        return self._app

    @property
    def database(self) -> DatabaseConfig:
        """Get database configuration."""
        if self._database is None:
            self._database = DatabaseConfig()
        return self._database

    @property
    def logging(self) -> LoggingConfig:
        """Get logging configuration."""
        if self._logging is None:
            self._logging = LoggingConfig().for_environment(self.app.environment, self.app.debug)
        return self._logging

    @property
    def scoring(self) -> ScoringConfig:
        """Get scoring configuration."""
        if self._scoring is None:
            self._scoring = ScoringConfig()
        return self._scoring

    @property
    def workflow(self) -> WorkflowConfig:
        """Get workflow configuration."""
        if self._workflow is None:
            self._workflow = WorkflowConfig()
        return self._workflow

    def is_development(self) -> bool:
        return self.app.environment == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get application settings instance (cached).

    Example:
        >>> settings = get_settings()
        >>> db_url = settings.database.get_connection_url()
    """
    return Settings()


def load_settings_from_file(file_path: str) -> Settings:
    """
    Load settings from a JSON configuration file.

    Each top-level section maps to the environment prefix of the same name,
    e.g. ``{"scoring": {"warning_penalty": 1}}`` sets ``SCORING_WARNING_PENALTY``.

    Raises:
        FileNotFoundError: If configuration file doesn't exist
        ValueError: If file format is unsupported
    """
    import json

    config_path = Path(file_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    if config_path.suffix.lower() == ".json":
        with open(config_path) as f:
            config_data = json.load(f)
    else:
        raise ValueError(f"Unsupported configuration file format: {config_path.suffix}")

    prefixes = {"app": "APP", "database": "DB", "logging": "LOG"}
    for section, values in config_data.items():
        if isinstance(values, dict):
            prefix = prefixes.get(section.lower(), section.upper())
            for key, value in values.items():
                env_key = f"{prefix}_{key.upper()}"
                if isinstance(value, (list, dict)):
                    os.environ[env_key] = json.dumps(value)
                else:
                    os.environ[env_key] = str(value)

    get_settings.cache_clear()
    return get_settings()


def override_settings(**kwargs) -> Settings:
    """
    Override specific settings for testing or development.

    Keys are environment variable names without regard to case.

    Example:
        >>> settings = override_settings(app_environment="testing", scoring_warning_penalty=1)
    """
    for key, value in kwargs.items():
        os.environ[key.upper()] = str(value)

    get_settings.cache_clear()
    return get_settings()


def reset_settings() -> None:
    """Reset settings cache to reload from environment."""
    get_settings.cache_clear()
