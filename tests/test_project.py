"""Project configuration and scaffolding."""

from __future__ import annotations

from pathlib import Path

import pytest

from livesheet.project import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG,
    load_project_config,
    scaffold_project,
    storage_dir,
)


class TestLoadProjectConfig:
    def test_defaults_without_config_file(self, tmp_path: Path) -> None:
        assert load_project_config(tmp_path) == DEFAULT_CONFIG

    def test_defaults_for_commented_out_file(self, tmp_path: Path) -> None:
        scaffold_project(tmp_path)
        config = load_project_config(tmp_path)
        assert config["debounce_ms"] == 250
        assert config["removal_delay_ms"] == 100
        assert config["storage_key"] == "formulas"

    def test_user_values_override_defaults(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("debounce_ms: 50\nstorage_dir: state\n")
        config = load_project_config(tmp_path)
        assert config["debounce_ms"] == 50
        assert config["removal_delay_ms"] == 100
        assert storage_dir(tmp_path, config) == tmp_path / "state"

    def test_non_mapping_rejected(self, tmp_path: Path) -> None:
        (tmp_path / CONFIG_FILENAME).write_text("- just\n- a list\n")
        with pytest.raises(ValueError):
            load_project_config(tmp_path)


class TestScaffold:
    def test_creates_config_and_data_dir(self, tmp_path: Path) -> None:
        project = scaffold_project(tmp_path / "proj")
        assert (project / CONFIG_FILENAME).exists()
        assert (project / "data").is_dir()
        assert storage_dir(project) == project / "data"

    def test_refuses_existing_project(self, tmp_path: Path) -> None:
        scaffold_project(tmp_path)
        with pytest.raises(FileExistsError):
            scaffold_project(tmp_path)
