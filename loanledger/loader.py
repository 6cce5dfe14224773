"""YAML configuration loader."""

import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from . import constants
from .errors import ConfigurationError
from .schema import LedgerConfig

logger = logging.getLogger(__name__)


def find_config_file() -> Optional[Path]:
    """
    Locate the loanledger configuration file.

    Search order (highest to lowest priority):
    1. LOANLEDGER_CONFIG environment variable
    2. loanledger.config.yaml in the current directory

    Returns:
        Path to the configuration file or None if not found
    """
    if env_file := os.getenv(constants.ENV_CONFIG_FILE):
        path = Path(env_file)
        if path.is_file():
            return path
        logger.warning("LOANLEDGER_CONFIG points to non-existent file: %s", env_file)

    cwd_file = Path.cwd() / constants.DEFAULT_CONFIG_FILENAME
    if cwd_file.is_file():
        return cwd_file

    return None


def load_config(filepath: Optional[Path] = None) -> LedgerConfig:
    """
    Load and validate the configuration.

    Args:
        filepath: Optional explicit path. If None, find_config_file() is used
                  and defaults apply when nothing is found.

    Returns:
        LedgerConfig; LOANLEDGER_STORE overrides store_path when set

    Raises:
        ConfigurationError: If the file cannot be read or fails validation
    """
    path = filepath if filepath is not None else find_config_file()
    data: dict = {}

    if path is not None:
        logger.debug("Loading configuration from: %s", path)
        try:
            with Path(path).open() as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.error("Cannot read configuration %s: %s", path, e)
            raise ConfigurationError(f"Cannot read configuration '{path}': {e}") from e

        if loaded is None:
            logger.warning("Empty configuration file: %s", path)
        elif not isinstance(loaded, dict):
            raise ConfigurationError(f"Configuration '{path}' must be a mapping")
        else:
            data = loaded

    if env_store := os.getenv(constants.ENV_STORE_FILE):
        data = {**data, "store_path": env_store}

    try:
        return LedgerConfig(**data)
    except ValidationError as e:
        logger.error("Invalid configuration in %s: %s", path or "environment", e)
        raise ConfigurationError(f"Invalid configuration: {e}") from e
