"""Tests for TreebeardConfig validation and loading."""

import dataclasses

import pytest

from treebeard import ConfigurationError, TreebeardConfig
from treebeard.config import DEFAULT_ENDPOINT

pytestmark = pytest.mark.unit


class TestValidation:
    def test_defaults(self) -> None:
        config = TreebeardConfig(project_name="shop")

        assert config.api_key is None
        assert config.endpoint == DEFAULT_ENDPOINT
        assert config.batch_size == 100
        assert config.flush_interval == 5.0
        assert config.capture_console is False
        assert config.capture_unhandled is True
        assert config.max_retries == 3

    def test_is_immutable(self) -> None:
        config = TreebeardConfig(project_name="shop")

        with pytest.raises(dataclasses.FrozenInstanceError):
            config.batch_size = 5  # type: ignore[misc]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"project_name": ""},
            {"batch_size": 0},
            {"batch_size": "10"},
            {"batch_size": True},
            {"flush_interval": 0},
            {"request_timeout": -1},
            {"max_retries": -1},
            {"retry_backoff": -0.5},
            {"endpoint": "ftp://example.com/logs"},
            {"endpoint": "not a url"},
            {"api_key": 1234},
        ],
    )
    def test_malformed_values_raise(self, overrides) -> None:
        options = {"project_name": "shop", **overrides}

        with pytest.raises(ConfigurationError):
            TreebeardConfig(**options)

    def test_configuration_error_is_a_value_error(self) -> None:
        with pytest.raises(ValueError):
            TreebeardConfig(project_name="shop", batch_size=0)

    def test_endpoint_trailing_slash_is_stripped(self) -> None:
        config = TreebeardConfig(project_name="shop", endpoint="http://localhost:8000/logs/batch/")

        assert config.endpoint == "http://localhost:8000/logs/batch"

    def test_empty_api_key_means_no_key(self) -> None:
        assert TreebeardConfig(project_name="shop", api_key="").api_key is None


class TestFromMapping:
    def test_accepts_wire_names(self) -> None:
        config = TreebeardConfig.from_mapping(
            {
                "apiKey": "k",
                "projectName": "shop",
                "batchSize": 10,
                "flushIntervalMs": 2500,
                "captureConsole": True,
                "captureUnhandled": False,
                "endpoint": "https://ingest.example.com/logs/batch",
            }
        )

        assert config.api_key == "k"
        assert config.project_name == "shop"
        assert config.batch_size == 10
        assert config.flush_interval == 2.5
        assert config.capture_console is True
        assert config.capture_unhandled is False

    def test_unknown_key_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="unrecognized"):
            TreebeardConfig.from_mapping({"project_name": "shop", "basePath": "/x"})

    def test_missing_project_name_is_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="project_name"):
            TreebeardConfig.from_mapping({"api_key": "k"})


class TestFromEnv:
    def test_reads_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("TREEBEARD_API_KEY", "env-key")
        monkeypatch.setenv("TREEBEARD_PROJECT_NAME", "env-project")
        monkeypatch.setenv("TREEBEARD_BATCH_SIZE", "25")
        monkeypatch.setenv("TREEBEARD_FLUSH_INTERVAL", "1.5")

        config = TreebeardConfig.from_env()

        assert config.api_key == "env-key"
        assert config.project_name == "env-project"
        assert config.batch_size == 25
        assert config.flush_interval == 1.5

    def test_overrides_win(self, monkeypatch) -> None:
        monkeypatch.setenv("TREEBEARD_PROJECT_NAME", "env-project")

        assert TreebeardConfig.from_env(project_name="explicit").project_name == "explicit"

    def test_malformed_number_raises(self, monkeypatch) -> None:
        monkeypatch.setenv("TREEBEARD_PROJECT_NAME", "env-project")
        monkeypatch.setenv("TREEBEARD_BATCH_SIZE", "many")

        with pytest.raises(ConfigurationError):
            TreebeardConfig.from_env()

    def test_missing_project_name_raises(self) -> None:
        with pytest.raises(ConfigurationError):
            TreebeardConfig.from_env()

    def test_with_env_defaults_fills_key(self, monkeypatch) -> None:
        monkeypatch.setenv("TREEBEARD_API_KEY", "env-key")

        config = TreebeardConfig(project_name="shop").with_env_defaults()

        assert config.api_key == "env-key"
