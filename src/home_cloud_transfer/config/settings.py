"""Configuration and environment settings for the transfer service."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class CloudSettings(BaseSettings):
    """Remote cloud service connection settings."""

    model_config = SettingsConfigDict(extra="forbid")

    base_url: Annotated[str, Field(min_length=1)] = "https://app.famick.com"
    timeout_seconds: Annotated[float, Field(gt=0, le=600)] = 30.0

    @field_validator("base_url")
    @classmethod
    def _base_url_must_be_http(cls, value: str) -> str:
        """Ensure the base URL is an http(s) URL.

        Args:
            value: Raw base URL.

        Returns:
            The URL without trailing slashes.

        Raises:
            ValueError: If the scheme is not http or https.
        """
        stripped = value.strip().rstrip("/")
        if not stripped.startswith(("http://", "https://")):
            raise ValueError(f"base_url must start with http:// or https://: {value!r}")
        return stripped


class StorageSettings(BaseSettings):
    """Settings for the ledger database, the local export and reports."""

    model_config = SettingsConfigDict(extra="forbid")

    root_dir: Path = Path("./data")
    sqlite_path_override: Path | None = None
    snapshot_path_override: Path | None = None
    reports_dir_override: Path | None = None

    @field_validator("root_dir")
    @classmethod
    def _root_dir_to_absolute(cls, value: Path) -> Path:
        """Resolve the storage root directory to an absolute path."""
        return value.expanduser().resolve()

    @field_validator("sqlite_path_override", "snapshot_path_override", "reports_dir_override")
    @classmethod
    def _paths_to_absolute(cls, value: Path | None) -> Path | None:
        """Resolve optional override paths to absolute paths."""
        return value.expanduser().resolve() if value is not None else None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def sqlite_path(self) -> Path:
        """Return the resolved ledger database path."""
        return (self.sqlite_path_override or (self.root_dir / "transfer.sqlite3")).resolve()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def snapshot_path(self) -> Path:
        """Return the resolved household export path."""
        return (self.snapshot_path_override or (self.root_dir / "household.json")).resolve()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def reports_dir(self) -> Path:
        """Return the resolved reports directory."""
        return (self.reports_dir_override or (self.root_dir / "reports")).resolve()


class TransferSettings(BaseSettings):
    """Transfer engine tuning."""

    model_config = SettingsConfigDict(extra="forbid")

    list_fetch_attempts: Annotated[int, Field(ge=1, le=10)] = 3
    list_fetch_backoff_seconds: Annotated[float, Field(ge=0, le=60)] = 0.5


class ServerSettings(BaseSettings):
    """HTTP surface settings."""

    model_config = SettingsConfigDict(extra="forbid")

    host: Annotated[str, Field(min_length=1)] = "127.0.0.1"
    port: Annotated[int, Field(ge=1, le=65535)] = 8080
    admin_api_key: Annotated[str | None, Field(repr=False)] = None

    @field_validator("admin_api_key")
    @classmethod
    def _blank_key_disables_auth(cls, value: str | None) -> str | None:
        """Treat a blank key as unset."""
        if value is None:
            return None
        stripped = value.strip()
        return stripped or None


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(extra="forbid")

    level: Annotated[str, Field(min_length=1)] = "INFO"
    json_logs: bool = True


class AppSettings(BaseSettings):
    """Top-level application settings."""

    model_config = SettingsConfigDict(
        env_prefix="HCT_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="forbid",
    )

    cloud: CloudSettings = Field(default_factory=CloudSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    transfer: TransferSettings = Field(default_factory=TransferSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(*, env_file: Path | None) -> AppSettings:
    """Load validated settings from environment and optional file.

    Args:
        env_file: Optional .env file path.

    Returns:
        Validated AppSettings instance.
    """
    if env_file is None:
        return AppSettings()
    return AppSettings(_env_file=env_file)  # type: ignore[call-arg]
