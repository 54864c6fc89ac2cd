# src/issuebatch/core/config.py
"""
Configuration schema and loading for issuebatch.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class TrackerSettings(BaseModel):
    """Issue tracker connection.

    Example YAML:
        tracker:
          base_url: https://tracker.example.com
          token: ${TRACKER_TOKEN}
          bulk_timeout_seconds: 30
    """

    model_config = {"frozen": True}

    base_url: str = Field(description="Tracker base URL (scheme and host)")
    token: str | None = Field(default=None, description="Bearer token for the tracker API")
    bulk_endpoint: str = Field(
        default="/rest/api/2/issue/bulk",
        description="Path of the multi-item create endpoint",
    )
    bulk_timeout_seconds: float = Field(default=30.0, gt=0, description="Timeout for one bulk create call")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an absolute http(s) URL and drop any trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_url must start with http:// or https://, got {v!r}")
        return v.rstrip("/")

    @field_validator("bulk_endpoint")
    @classmethod
    def validate_bulk_endpoint(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"bulk_endpoint must start with '/', got {v!r}")
        return v


class HierarchySettings(BaseModel):
    """Names of the control fields that link records to each other."""

    model_config = {"frozen": True}

    uid_field: str = Field(default="uid", min_length=1, description="Temporary identifier field")
    parent_field: str = Field(default="Parent", min_length=1, description="Parent reference field")

    @model_validator(mode="after")
    def validate_distinct_fields(self) -> "HierarchySettings":
        if self.uid_field == self.parent_field:
            raise ValueError(f"uid_field and parent_field must differ, both are {self.uid_field!r}")
        return self


class ManifestSettings(BaseModel):
    """Run manifest persistence."""

    model_config = {"frozen": True}

    url: str = Field(
        default="sqlite:///./state/manifests.db",
        description="SQLAlchemy connection URL",
    )
    retention_hours: float = Field(default=24.0, gt=0, description="Hours a manifest stays retryable")


class ConcurrencySettings(BaseModel):
    """Per-level fan-out of record builds."""

    model_config = {"frozen": True}

    max_workers: int = Field(default=4, gt=0, description="Worker threads building one level")


class RetrySettings(BaseModel):
    """Retry behavior for throttled (429) or unavailable (503) tracker calls."""

    model_config = {"frozen": True}

    max_attempts: int = Field(default=3, gt=0, description="Maximum attempts, including the first")
    initial_delay_seconds: float = Field(default=1.0, gt=0, description="Initial backoff delay")
    max_delay_seconds: float = Field(default=60.0, gt=0, description="Maximum backoff delay")
    exponential_base: float = Field(default=2.0, gt=1.0, description="Exponential backoff base")


class BuilderSettings(BaseModel):
    """Default record -> payload mapping.

    Example YAML:
        builder:
          field_map:
            Project: project
            Summary: summary
            Issue Type: issuetype
          required_fields: [Project, Summary, Issue Type]
    """

    model_config = {"frozen": True}

    field_map: dict[str, str] = Field(
        default_factory=dict,
        description="Record field name -> tracker field id (unmapped names pass through)",
    )
    required_fields: tuple[str, ...] = Field(
        default=(),
        description="Record fields that must be present and non-empty",
    )


class LoggingSettings(BaseModel):
    """Logging output."""

    model_config = {"frozen": True}

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO", description="Root log level")
    json_output: bool = Field(default=False, description="Emit JSON lines instead of console output")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class IssueBatchSettings(BaseModel):
    """Top-level issuebatch configuration.

    This is the single source of truth for a run's configuration.
    All settings are validated and frozen after construction.
    """

    model_config = {"frozen": True}

    tracker: TrackerSettings = Field(description="Issue tracker connection")
    hierarchy: HierarchySettings = Field(default_factory=HierarchySettings)
    manifest: ManifestSettings = Field(default_factory=ManifestSettings)
    concurrency: ConcurrencySettings = Field(default_factory=ConcurrencySettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    builder: BuilderSettings = Field(default_factory=BuilderSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Args:
        config: Configuration dict (may contain nested structures)

    Returns:
        New dict with environment variables expanded
    """
    import os

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default = match.group(2)  # None if no default specified
            env_value = os.environ.get(var_name)
            if env_value is not None:
                return env_value
            if default is not None:
                return default
            # No env var and no default - keep original (validation will likely reject it)
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _lowercase_setting_keys(config: dict[str, Any]) -> dict[str, Any]:
    """Lowercase section and setting names.

    Dynaconf upper-cases top-level keys and keeps nested keys as written,
    so ISSUEBATCH_TRACKER__BASE_URL arrives as {"TRACKER": {"BASE_URL": ...}}.
    Values of user-data settings such as builder.field_map are untouched.
    """
    result: dict[str, Any] = {}
    for section, value in config.items():
        if isinstance(value, dict):
            value = {k.lower(): v for k, v in value.items()}
        result[section.lower()] = value
    return result


def load_settings(config_path: Path) -> IssueBatchSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (ISSUEBATCH_*) - highest priority
    2. Config file (settings.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: ISSUEBATCH_TRACKER__BASE_URL for nested keys.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated IssueBatchSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Explicit check for file existence (Dynaconf silently accepts missing files)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="ISSUEBATCH",
        settings_files=[str(config_path)],
        environments=False,  # No [default]/[production] sections
        load_dotenv=False,  # .env is loaded by the CLI, not here
        merge_enabled=True,  # Deep merge nested dicts
    )

    # Filter out internal Dynaconf settings
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k: v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}
    raw_config = _lowercase_setting_keys(raw_config)

    raw_config = _expand_env_vars(raw_config)

    return IssueBatchSettings(**raw_config)
