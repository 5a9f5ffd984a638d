"""
Configuration loader — reads tagwatch.yml into a RunnerConfig.

The file is optional: when none is found the runners start from the
model defaults and CLI flags alone. An explicit ``--config`` path that
does not exist is an error.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from tagwatch.core.errors import ConfigError
from tagwatch.core.models.config import RunnerConfig

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "tagwatch.yml"


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for tagwatch.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to tagwatch.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None, *, required: bool = False) -> RunnerConfig:
    """Load and validate runner configuration.

    Args:
        path: Explicit path to tagwatch.yml. If None, searches upward.
        required: Raise instead of returning defaults when nothing is found.

    Returns:
        Validated RunnerConfig.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    if path is None:
        path = find_config_file()
        if path is None:
            if required:
                raise ConfigError(f"No {CONFIG_FILE} found. Specify one with --config.")
            logger.debug("No %s found, using defaults", CONFIG_FILE)
            return RunnerConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading runner config from %s", path)

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

    # Relative paths in the file are relative to the file, not the cwd
    base_dir = data.get("base_dir")
    if isinstance(base_dir, str) and not base_dir.startswith("~"):
        data["base_dir"] = str((path.parent / base_dir).resolve())

    try:
        config = RunnerConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    logger.info("Loaded runner config from %s (base_dir=%s)", path, config.base_dir)
    return config
