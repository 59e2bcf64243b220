"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables (12-factor app)
  - Fall back to .env file
  - Validate types and constraints at startup

Only AppSettings is a BaseSettings instance. Sub-settings are plain BaseModel
classes populated via env_nested_delimiter="__", so STORAGE__BACKEND maps to
storage.backend and STORAGE__DATABASE__HOST to storage.database.host.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the .env file relative to the project root (two levels above this file),
# so settings load correctly regardless of the working directory at runtime.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class StorageBackend(StrEnum):
    MEMORY = "memory"
    POSTGRES = "postgres"


class DatabaseSettings(BaseModel):
    """
    PostgreSQL connection configuration.

    Accepts either a full connection string (STORAGE__DATABASE__DSN) or the
    individual components. The DSN takes priority when both are provided and
    is always available via get_dsn() after construction.
    """

    dsn: SecretStr | None = Field(
        default=None,
        description="Full PostgreSQL connection string (overrides individual fields)",
    )
    host: str | None = Field(default=None, description="PostgreSQL host")
    port: int = Field(default=5432, ge=1, le=65535, description="PostgreSQL port")
    name: str | None = Field(default=None, description="PostgreSQL database name")
    username: str | None = Field(default=None, description="PostgreSQL username")
    password: SecretStr | None = Field(default=None, description="PostgreSQL password")

    @model_validator(mode="after")
    def resolve_dsn(self) -> DatabaseSettings:
        """Build the DSN from components unless one was given outright."""
        if self.dsn is not None:
            return self
        missing = [f for f, v in [
            ("STORAGE__DATABASE__HOST", self.host),
            ("STORAGE__DATABASE__NAME", self.name),
            ("STORAGE__DATABASE__USERNAME", self.username),
            ("STORAGE__DATABASE__PASSWORD", self.password),
        ] if not v]
        if missing:
            raise ValueError(
                "Set STORAGE__DATABASE__DSN or provide all of: " + ", ".join(missing)
            )
        dsn_value = (
            f"postgresql://{self.username}:{self.password.get_secret_value()}"  # type: ignore[union-attr]
            f"@{self.host}:{self.port}/{self.name}"
        )
        object.__setattr__(self, "dsn", SecretStr(dsn_value))
        return self

    def get_dsn(self) -> str:
        assert self.dsn is not None  # guaranteed by resolve_dsn validator
        return self.dsn.get_secret_value()


class StorageSettings(BaseModel):
    """
    Object storage layout and backend.

    The database block is only required (and only validated) for the
    postgres backend.
    """

    backend: StorageBackend = Field(default=StorageBackend.MEMORY)
    database: DatabaseSettings | None = Field(default=None)
    table: str = Field(default="pki_objects", pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    ca_prefix: str = Field(default="ca/", description="Prefix of stored CA certificates")
    full_folder: str = Field(default="full", description="Folder for full CRLs")
    delta_folder: str = Field(default="delta", description="Folder for delta CRLs")

    @field_validator("full_folder", "delta_folder")
    @classmethod
    def validate_folder(cls, value: str) -> str:
        folder = value.strip().strip("/")
        if not folder or "/" in folder:
            raise ValueError(f"Folder must be a single non-empty path segment, got {value!r}")
        return folder

    @model_validator(mode="after")
    def require_database_for_postgres(self) -> StorageSettings:
        if self.backend is StorageBackend.POSTGRES and self.database is None:
            raise ValueError("STORAGE__DATABASE__* settings are required for the postgres backend")
        if self.full_folder == self.delta_folder:
            raise ValueError("full_folder and delta_folder must differ")
        return self

    @property
    def known_prefixes(self) -> tuple[str, ...]:
        return (self.ca_prefix, f"{self.full_folder}/", f"{self.delta_folder}/")


class ServerSettings(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    storage: StorageSettings = Field(default_factory=lambda: StorageSettings())
    server: ServerSettings = Field(default_factory=lambda: ServerSettings())
    log_level: str = Field(default="INFO")
