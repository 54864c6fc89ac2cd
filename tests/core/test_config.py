"""Tests for configuration schema and loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from issuebatch.core.config import (
    HierarchySettings,
    IssueBatchSettings,
    LoggingSettings,
    TrackerSettings,
    load_settings,
)

MINIMAL_YAML = """
tracker:
  base_url: "https://tracker.example.com/"
"""


class TestTrackerSettings:
    def test_defaults(self) -> None:
        settings = TrackerSettings(base_url="https://tracker.example.com")

        assert settings.bulk_endpoint == "/rest/api/2/issue/bulk"
        assert settings.bulk_timeout_seconds == 30.0
        assert settings.token is None

    def test_trailing_slash_stripped(self) -> None:
        assert TrackerSettings(base_url="https://tracker.example.com/").base_url == "https://tracker.example.com"

    def test_requires_http_scheme(self) -> None:
        with pytest.raises(ValidationError, match="base_url must start with"):
            TrackerSettings(base_url="tracker.example.com")

    def test_bulk_endpoint_must_be_absolute_path(self) -> None:
        with pytest.raises(ValidationError, match="bulk_endpoint"):
            TrackerSettings(base_url="https://t.example.com", bulk_endpoint="rest/api/2/issue/bulk")

    def test_timeout_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            TrackerSettings(base_url="https://t.example.com", bulk_timeout_seconds=0)

    def test_frozen(self) -> None:
        settings = TrackerSettings(base_url="https://t.example.com")

        with pytest.raises(ValidationError):
            settings.token = "x"  # type: ignore[misc]


class TestSectionSettings:
    def test_hierarchy_fields_must_differ(self) -> None:
        with pytest.raises(ValidationError, match="must differ"):
            HierarchySettings(uid_field="id", parent_field="id")

    def test_logging_level_normalized(self) -> None:
        assert LoggingSettings(level="debug").level == "DEBUG"

    def test_logging_level_rejects_unknown(self) -> None:
        with pytest.raises(ValidationError):
            LoggingSettings(level="chatty")

    def test_top_level_defaults(self) -> None:
        settings = IssueBatchSettings(tracker=TrackerSettings(base_url="https://t.example.com"))

        assert settings.hierarchy.uid_field == "uid"
        assert settings.hierarchy.parent_field == "Parent"
        assert settings.manifest.retention_hours == 24.0
        assert settings.concurrency.max_workers == 4
        assert settings.retry.max_attempts == 3

    def test_tracker_required(self) -> None:
        with pytest.raises(ValidationError):
            IssueBatchSettings()  # type: ignore[call-arg]


class TestLoadSettings:
    def test_load_minimal(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(MINIMAL_YAML)

        settings = load_settings(config_file)

        assert settings.tracker.base_url == "https://tracker.example.com"
        assert settings.manifest.url == "sqlite:///./state/manifests.db"

    def test_load_full(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("""
tracker:
  base_url: "https://tracker.example.com"
  bulk_timeout_seconds: 45
hierarchy:
  uid_field: ref
  parent_field: Epic
concurrency:
  max_workers: 8
retry:
  max_attempts: 5
builder:
  field_map:
    Summary: summary
    Issue Type: issuetype.name
  required_fields: [Summary]
logging:
  level: debug
""")

        settings = load_settings(config_file)

        assert settings.tracker.bulk_timeout_seconds == 45.0
        assert settings.hierarchy.parent_field == "Epic"
        assert settings.concurrency.max_workers == 8
        assert settings.retry.max_attempts == 5
        assert settings.builder.field_map == {"Summary": "summary", "Issue Type": "issuetype.name"}
        assert settings.builder.required_fields == ("Summary",)
        assert settings.logging.level == "DEBUG"

    def test_load_with_env_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(MINIMAL_YAML)
        # Environment variable should override YAML
        monkeypatch.setenv("ISSUEBATCH_TRACKER__BASE_URL", "https://other.example.com")

        settings = load_settings(config_file)
        assert settings.tracker.base_url == "https://other.example.com"

    def test_env_var_expansion(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("""
tracker:
  base_url: "https://tracker.example.com"
  token: "${TRACKER_TOKEN}"
manifest:
  url: "${MANIFEST_URL:-sqlite:///./default.db}"
""")
        monkeypatch.setenv("TRACKER_TOKEN", "secret")
        monkeypatch.delenv("MANIFEST_URL", raising=False)

        settings = load_settings(config_file)

        assert settings.tracker.token == "secret"
        assert settings.manifest.url == "sqlite:///./default.db"

    def test_load_validates_schema(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text(MINIMAL_YAML + "concurrency:\n  max_workers: -1\n")

        with pytest.raises(ValidationError):
            load_settings(config_file)

    def test_load_missing_required_section(self, tmp_path: Path) -> None:
        config_file = tmp_path / "settings.yaml"
        config_file.write_text("retry:\n  max_attempts: 5\n")

        with pytest.raises(ValidationError):
            load_settings(config_file)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "nope.yaml")
