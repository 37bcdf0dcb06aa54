"""Unit tests for attractor.cli.config."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from attractor.cli.config import (
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILE,
    AttractorConfig,
    default_config_toml,
    load_config,
)
from attractor.cli.errors import EXIT_CONFIG_ERROR, ConfigError


@pytest.fixture(autouse=True)
def _clean_env():
    """Strip ATTRACTOR_ variables from the environment for every test."""
    cleaned = {k: v for k, v in os.environ.items() if not k.startswith("ATTRACTOR_")}
    with patch.dict(os.environ, cleaned, clear=True):
        yield


class TestAttractorConfig:
    def test_defaults(self) -> None:
        cfg = AttractorConfig()
        assert cfg.log_level == "INFO"
        assert cfg.log_file is None
        assert cfg.home_dir is None
        assert cfg.repo_root is None

    def test_extra_fields_ignored(self) -> None:
        cfg = AttractorConfig(unknown="x")  # type: ignore[call-arg]
        assert not hasattr(cfg, "unknown")


class TestLoadConfig:
    def test_no_file_returns_defaults(self, tmp_path: Path) -> None:
        cfg = load_config(project_dir=tmp_path)
        assert cfg == AttractorConfig()

    def test_reads_default_location_with_sections(self, tmp_path: Path) -> None:
        config_dir = tmp_path / DEFAULT_CONFIG_DIR
        config_dir.mkdir()
        (config_dir / DEFAULT_CONFIG_FILE).write_text(
            '[general]\nlog_level = "DEBUG"\n\n[discovery]\nhome_dir = "/opt/home"\n',
            encoding="utf-8",
        )
        cfg = load_config(project_dir=tmp_path)
        assert cfg.log_level == "DEBUG"
        assert cfg.home_dir == Path("/opt/home")

    def test_explicit_path_flat_keys(self, tmp_path: Path) -> None:
        path = tmp_path / "custom.toml"
        path.write_text('repo_root = "/src/repo"\n', encoding="utf-8")
        assert load_config(path).repo_root == Path("/src/repo")

    def test_explicit_missing_path(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "nope.toml")
        assert exc_info.value.exit_code == EXIT_CONFIG_ERROR

    def test_malformed_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text("log_level = \n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(path)

    def test_default_toml_parses(self, tmp_path: Path) -> None:
        path = tmp_path / "default.toml"
        path.write_text(default_config_toml(), encoding="utf-8")
        assert load_config(path) == AttractorConfig()


class TestEnvOverrides:
    def test_env_overrides_file(self, tmp_path: Path) -> None:
        path = tmp_path / "c.toml"
        path.write_text('log_level = "WARNING"\n', encoding="utf-8")
        with patch.dict(os.environ, {"ATTRACTOR_LOG_LEVEL": "ERROR"}):
            assert load_config(path).log_level == "ERROR"

    def test_path_fields(self, tmp_path: Path) -> None:
        with patch.dict(os.environ, {"ATTRACTOR_HOME_DIR": str(tmp_path)}):
            assert load_config(project_dir=tmp_path).home_dir == tmp_path

    def test_unknown_env_ignored(self, tmp_path: Path) -> None:
        with patch.dict(os.environ, {"ATTRACTOR_NOT_A_FIELD": "1"}):
            assert load_config(project_dir=tmp_path) == AttractorConfig()


class TestValidation:
    @pytest.mark.parametrize("raw,level", [("debug", "DEBUG"), (" Warn ", "WARNING"), ("error", "ERROR")])
    def test_log_level_normalised(self, raw: str, level: str) -> None:
        assert AttractorConfig(log_level=raw).log_level == level

    def test_unknown_log_level_is_config_error(self, tmp_path: Path) -> None:
        path = tmp_path / "c.toml"
        path.write_text('log_level = "chatty"\n', encoding="utf-8")
        with pytest.raises(ConfigError, match="log_level"):
            load_config(path)

    def test_home_dir_expands_user(self) -> None:
        cfg = AttractorConfig(home_dir="~/flows")
        assert cfg.home_dir == Path.home() / "flows"
