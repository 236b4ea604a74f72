"""
Tests for configuration loading.
"""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from plancheck.config import (
    Config,
    DetectorConfig,
    get_config,
    load_config_from_env,
    load_config_from_file,
    reset_config,
)


class TestConfigModel:
    def test_defaults(self) -> None:
        config = Config()

        assert config.primary_enabled is True
        assert config.primary_timeout_ms == 10_000
        assert config.max_input_size_mb == 100.0
        assert config.max_depth == 100
        assert config.max_nodes == 50_000
        assert config.log_buffer_size == 1000
        assert config.detectors == {}

    def test_detectors_enabled_by_default(self) -> None:
        config = Config(detectors={"disk_spill": DetectorConfig(enabled=False)})

        assert config.is_detector_enabled("disk_spill") is False
        assert config.is_detector_enabled("missing_index") is True

    def test_normalizer_config(self) -> None:
        config = Config(primary_timeout_ms=250, max_depth=20, max_input_size_mb=1.0)
        normalizer_config = config.normalizer_config()

        assert normalizer_config.primary_timeout_ms == 250
        assert normalizer_config.max_depth == 20
        assert normalizer_config.max_input_bytes == 1024 * 1024

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValidationError):
            Config(primary_timeout_ms=0)

    def test_frozen(self) -> None:
        with pytest.raises(ValidationError):
            Config().max_depth = 5


class TestEnvironment:
    """Tests for PLANCHECK_* environment variables."""

    def test_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PLANCHECK_PRIMARY_ENABLED", "false")
        monkeypatch.setenv("PLANCHECK_PRIMARY_TIMEOUT_MS", "2000")
        monkeypatch.setenv("PLANCHECK_MAX_INPUT_SIZE_MB", "10.5")
        monkeypatch.setenv("PLANCHECK_MAX_NODES", "500")

        config = load_config_from_env()

        assert config.primary_enabled is False
        assert config.primary_timeout_ms == 2000
        assert config.max_input_size_mb == 10.5
        assert config.max_nodes == 500

    def test_unparseable_values_use_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PLANCHECK_MAX_DEPTH", "deep")

        assert load_config_from_env().max_depth == 100

    def test_invalid_values_fall_back(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PLANCHECK_PRIMARY_TIMEOUT_MS", "-5")
        monkeypatch.setenv("PLANCHECK_DETECTOR_MISSING_INDEX_ENABLED", "no")

        config = load_config_from_env()

        assert config.primary_timeout_ms == 10_000
        assert config.is_detector_enabled("missing_index") is False

    def test_detector_toggles(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("PLANCHECK_DETECTOR_ROW_COUNT_MISMATCH_ENABLED", "false")
        monkeypatch.setenv("PLANCHECK_DETECTOR_DISK_SPILL_ENABLED", "true")

        config = load_config_from_env()

        assert config.is_detector_enabled("row_count_mismatch") is False
        assert config.is_detector_enabled("disk_spill") is True

    def test_unknown_detector_setting_ignored(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setenv("PLANCHECK_DETECTOR_DISK_SPILL_THRESHOLD", "5")

        config = load_config_from_env()

        assert config.detectors == {}
        assert "Ignoring unknown detector setting" in caplog.text


class TestConfigFile:
    """Tests for JSON and YAML config files."""

    def test_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "plancheck.yaml"
        path.write_text(
            "primary_timeout_ms: 1500\n"
            "detectors:\n"
            "  cte_materialization:\n"
            "    enabled: false\n"
        )

        config = load_config_from_file(path)

        assert config.primary_timeout_ms == 1500
        assert config.is_detector_enabled("cte_materialization") is False

    def test_json(self, tmp_path: Path) -> None:
        path = tmp_path / "plancheck.json"
        path.write_text(json.dumps({"max_depth": 42}))

        assert load_config_from_file(path).max_depth == 42

    def test_empty_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yml"
        path.write_text("")

        assert load_config_from_file(path) == Config()

    def test_missing_file_uses_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("PLANCHECK_MAX_DEPTH", "7")

        config = load_config_from_file(tmp_path / "absent.yaml")

        assert config.max_depth == 7

    def test_invalid_file_uses_environment(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        config = load_config_from_file(path)

        assert config == Config()
        assert "Failed to load config" in caplog.text

    def test_invalid_values_use_environment(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("max_depth: -1\n")

        assert load_config_from_file(path).max_depth == 100


class TestGlobalConfig:
    def test_cached_until_reset(self, monkeypatch: pytest.MonkeyPatch) -> None:
        first = get_config()
        monkeypatch.setenv("PLANCHECK_MAX_NODES", "10")

        assert get_config() is first

        reset_config()
        assert get_config().max_nodes == 10

    def test_config_file_variable(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "plancheck.yaml"
        path.write_text("log_buffer_size: 50\n")
        monkeypatch.setenv("PLANCHECK_CONFIG_FILE", str(path))

        assert get_config().log_buffer_size == 50
