"""Tests for configuration models."""

import json
import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from testrail_sync.models.config import BridgeConfig


def minimal(**overrides) -> BridgeConfig:
    data = {"base_url": "https://acme.testrail.io", "username": "qa@acme.io", "api_key": "k"}
    data.update(overrides)
    return BridgeConfig(**data)


class TestBridgeConfig:
    """Tests for BridgeConfig model."""

    def test_default_values(self):
        """Test BridgeConfig has correct default values."""
        config = minimal()
        assert config.timeout_seconds == 30.0
        assert config.default_section_id == 1
        assert config.case_page_limit == 1000
        assert config.max_parallel_resolutions == 5
        assert config.batch_size == 50
        assert config.max_parallel_batches == 3
        assert config.run_name_prefix == "Automated"
        assert config.run_history_limit == 50
        assert config.log_level == "INFO"

    def test_required_fields(self):
        with pytest.raises(ValidationError):
            BridgeConfig(base_url="https://acme.testrail.io")

    def test_trailing_slash_stripped(self):
        assert minimal(base_url="https://acme.testrail.io//").base_url == "https://acme.testrail.io"

    @pytest.mark.parametrize("field", ["batch_size", "max_parallel_batches", "max_parallel_resolutions"])
    def test_rejects_non_positive(self, field):
        with pytest.raises(ValidationError):
            minimal(**{field: 0})

    def test_env_api_key_resolution(self):
        """Test API key can be resolved from environment variable."""
        os.environ["TEST_TESTRAIL_KEY"] = "secret_from_env"
        try:
            config = minimal(api_key="env:TEST_TESTRAIL_KEY")
            assert config.api_key == "secret_from_env"
        finally:
            del os.environ["TEST_TESTRAIL_KEY"]

    def test_env_api_key_missing(self):
        """Test error when environment variable is not set."""
        with pytest.raises(ValidationError, match="NONEXISTENT_TESTRAIL_VAR"):
            minimal(api_key="env:NONEXISTENT_TESTRAIL_VAR")


class TestConfigFiles:

    def test_load_keeps_secret_out_of_file(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("TESTRAIL_API_KEY", "from-env")
        path = tmp_path / "testrail-sync.json"
        path.write_text(json.dumps({
            "base_url": "https://acme.testrail.io", "username": "qa",
            "api_key": "env:TESTRAIL_API_KEY", "batch_size": 25,
        }))

        loaded = BridgeConfig.load(path)

        assert loaded.api_key == "from-env"
        assert loaded.batch_size == 25
        assert json.loads(path.read_text())["api_key"] == "env:TESTRAIL_API_KEY"

    def test_load_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            BridgeConfig.load(tmp_path / "absent.json")

    def test_load_partial_file_uses_defaults(self, tmp_path: Path):
        path = tmp_path / "cfg.json"
        path.write_text(json.dumps({
            "base_url": "https://acme.testrail.io/", "username": "qa", "api_key": "k",
            "max_parallel_batches": 1,
        }))
        config = BridgeConfig.load(path)
        assert config.max_parallel_batches == 1
        assert config.batch_size == 50


class TestFromEnv:

    def test_reads_variables(self, monkeypatch):
        monkeypatch.setenv("TESTRAIL_URL", "https://env.testrail.io/")
        monkeypatch.setenv("TESTRAIL_USERNAME", "ci@acme.io")
        monkeypatch.setenv("TESTRAIL_API_KEY", "abc")

        config = BridgeConfig.from_env()

        assert config.base_url == "https://env.testrail.io"
        assert config.username == "ci@acme.io"
        assert config.api_key == "abc"

    def test_lists_missing_variables(self, monkeypatch):
        monkeypatch.setenv("TESTRAIL_URL", "https://env.testrail.io")
        monkeypatch.delenv("TESTRAIL_USERNAME", raising=False)
        monkeypatch.delenv("TESTRAIL_API_KEY", raising=False)

        with pytest.raises(EnvironmentError, match="TESTRAIL_USERNAME, TESTRAIL_API_KEY"):
            BridgeConfig.from_env()
