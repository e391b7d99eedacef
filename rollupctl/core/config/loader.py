"""
Configuration loader — reads deploy.yml and the credentials file.

deploy.yml is optional: with no file anywhere up the tree the defaults
describe a stock single-host install.  Secrets never live in deploy.yml;
they come from ``credentials_file`` (KEY=value lines), with the process
environment as fallback.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from pathlib import Path

import yaml

from rollupctl.core.models.deployment import DeployConfig

logger = logging.getLogger(__name__)

# Default config filename
DEPLOY_CONFIG_FILE = "deploy.yml"


class ConfigError(Exception):
    """Raised when deployment configuration is invalid or unreadable."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for deploy.yml starting from the given directory, walking up.

    Returns:
        Path to deploy.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / DEPLOY_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None) -> DeployConfig:
    """Load and validate deployment configuration.

    Args:
        path: Explicit path to deploy.yml. If None, searches upward and
            falls back to defaults when nothing is found.

    Raises:
        ConfigError: If an explicit path is missing, or any file found
            is unreadable or invalid.
    """
    if path is None:
        path = find_config_file()
        if path is None:
            logger.debug("No %s found, using defaults", DEPLOY_CONFIG_FILE)
            return DeployConfig()
    elif not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading deployment config from %s", path)

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
    base = path.parent.resolve()
    for key in ("log_dir", "state_dir", "credentials_file"):
        value = data.get(key)
        if isinstance(value, str) and value and not Path(value).is_absolute():
            data[key] = str(base / value)

    try:
        config = DeployConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid deployment configuration: {e}") from e

    logger.debug("Loaded deployment '%s' from %s", config.name, path)
    return config


def parse_env_file(text: str) -> dict[str, str]:
    """Parse ``KEY=value`` lines.

    Blank lines and ``#`` comments are ignored, an ``export`` prefix is
    accepted, and matching surrounding quotes are stripped.
    """
    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key, value = key.strip(), value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        if key:
            values[key] = value
    return values


def load_credentials(
    path: str | Path | None,
    keys: Iterable[str] = (),
    environ: dict[str, str] | None = None,
) -> dict[str, str]:
    """Resolve credentials from the credentials file, then the environment.

    Every key in the file is returned.  Each of ``keys`` missing from the
    file is looked up in ``environ`` (default ``os.environ``).

    Raises:
        ConfigError: If ``path`` is given but cannot be read.
    """
    environ = os.environ if environ is None else environ
    values: dict[str, str] = {}

    if path:
        cred_path = Path(path)
        try:
            values = parse_env_file(cred_path.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise ConfigError(f"Credentials file not found: {cred_path}") from e
        except OSError as e:
            raise ConfigError(f"Cannot read credentials file {cred_path}: {e}") from e
        logger.debug("Loaded %d credential(s) from %s", len(values), cred_path)

    for key in keys:
        if not values.get(key) and environ.get(key):
            values[key] = environ[key]

    return values
