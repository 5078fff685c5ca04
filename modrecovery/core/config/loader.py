"""
Configuration loader — reads recovery.yml into an EngineConfig.

The file is optional: without one the engine runs with defaults rooted at
the current directory. A relative ``workspace.root`` is resolved against
the directory holding the config file.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from modrecovery.core.models.config import EngineConfig

logger = logging.getLogger(__name__)

CONFIG_FILE = "recovery.yml"


class ConfigError(Exception):
    """Raised when recovery configuration is invalid or unreadable."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for recovery.yml starting from the given directory, walking up.

    Returns:
        Path to recovery.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def load_config(path: Path | None = None, search: bool = True) -> EngineConfig:
    """Load and validate engine configuration.

    Args:
        path: Explicit path to recovery.yml. If None, searches upward
            (unless ``search`` is False) and falls back to defaults.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    if path is None and search:
        path = find_config_file()

    if path is None:
        logger.debug("No %s found, using defaults", CONFIG_FILE)
        config = EngineConfig()
        config.workspace.root = str(Path.cwd().resolve())
        return config

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading recovery config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        config = EngineConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid recovery configuration: {e}") from e

    root = Path(config.workspace.root)
    if not root.is_absolute():
        root = path.parent / root
    config.workspace.root = str(root.resolve())

    logger.info(
        "Loaded recovery config from %s (workspace %s)", path, config.workspace.root
    )
    return config
