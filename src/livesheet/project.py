"""Project-level configuration and scaffolding."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


CONFIG_FILENAME = "livesheet.yaml"

DEFAULT_CONFIG = {
    "debounce_ms": 250,
    "removal_delay_ms": 100,
    "storage_key": "formulas",
    "storage_dir": "data",
    "max_propagation_steps": 100_000,
    "logging_fsync": False,
    "logging_tail_bytes": 2_097_152,  # 2 MB
}

DEFAULT_CONFIG_TEXT = """\
# livesheet project configuration
#
# Quiet period before a name or formula edit is applied:
# debounce_ms: 250
#
# Grace period between removing a cell and tearing down its subscriptions:
# removal_delay_ms: 100
#
# Storage key and directory (relative to the project) for the formula map:
# storage_key: formulas
# storage_dir: data
#
# Upper bound on callbacks per propagation drain:
# max_propagation_steps: 100000
"""


def load_project_config(project_dir: Path) -> dict[str, Any]:
    """Load project configuration from ``livesheet.yaml``, with defaults.

    Args:
        project_dir: Root of the livesheet project.

    Returns:
        Merged configuration dict.
    """
    config = dict(DEFAULT_CONFIG)
    config_path = project_dir / CONFIG_FILENAME
    if config_path.exists():
        user_config = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(user_config, dict):
            raise ValueError(f"{config_path} must contain a mapping")
        config.update(user_config)
    return config


def storage_dir(project_dir: Path, config: dict[str, Any] | None = None) -> Path:
    """Return the directory that holds the persisted formula map."""
    config = config if config is not None else load_project_config(project_dir)
    return project_dir / config["storage_dir"]


def scaffold_project(target_dir: Path) -> Path:
    """Create a new project with a default config and empty storage.

    Args:
        target_dir: Directory to create (must not already contain livesheet.yaml).

    Returns:
        The project directory path.

    Raises:
        FileExistsError: If the directory already holds a project.
    """
    target_dir.mkdir(parents=True, exist_ok=True)
    if (target_dir / CONFIG_FILENAME).exists():
        raise FileExistsError(f"{CONFIG_FILENAME} already exists in {target_dir}")

    (target_dir / CONFIG_FILENAME).write_text(DEFAULT_CONFIG_TEXT)
    (target_dir / DEFAULT_CONFIG["storage_dir"]).mkdir(exist_ok=True)
    return target_dir
