"""Tests for reading orchestration settings from the canvas configuration file."""

import json
from pathlib import Path

import pytest

from orchestration import config
from orchestration.config import (
    DEFAULT_MAX_CONTEXT_CHARS,
    DEFAULT_PAUSE_POLL_INTERVAL,
    DEFAULT_STORAGE_PATH,
    CoordinatorConfig,
)


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch) -> Path:
    path = tmp_path / "configuration.json"
    monkeypatch.setattr(config, "CANVAS_CONFIG_FILE", path)
    return path


class TestCoordinatorConfig:
    def test_defaults_without_file(self, config_file: Path):
        cfg = CoordinatorConfig()

        assert cfg.pause_poll_interval == DEFAULT_PAUSE_POLL_INTERVAL
        assert cfg.max_context_chars == DEFAULT_MAX_CONTEXT_CHARS
        assert cfg.storage_path == DEFAULT_STORAGE_PATH
        assert cfg.log_level == "INFO"

    def test_reads_orchestration_section(self, config_file: Path, tmp_path: Path):
        config_file.write_text(
            json.dumps(
                {
                    "orchestration": {
                        "pause_poll_interval": 0.1,
                        "max_context_chars": 500,
                        "storage_path": str(tmp_path / "runs"),
                        "log_level": "DEBUG",
                    }
                }
            ),
            encoding="utf-8",
        )

        cfg = CoordinatorConfig()

        assert cfg.pause_poll_interval == 0.1
        assert cfg.max_context_chars == 500
        assert cfg.storage_path == tmp_path / "runs"
        assert cfg.log_level == "DEBUG"

    def test_empty_storage_path_disables_persistence(self, config_file: Path):
        config_file.write_text(json.dumps({"orchestration": {"storage_path": ""}}))
        assert CoordinatorConfig().storage_path is None

    def test_malformed_file_falls_back_to_defaults(self, config_file: Path):
        config_file.write_text("{broken")
        assert config.get_canvas_config() == {}
        assert CoordinatorConfig().max_context_chars == DEFAULT_MAX_CONTEXT_CHARS

    def test_non_dict_section_is_ignored(self, config_file: Path):
        config_file.write_text(json.dumps({"orchestration": ["nope"]}))
        assert CoordinatorConfig().pause_poll_interval == DEFAULT_PAUSE_POLL_INTERVAL
