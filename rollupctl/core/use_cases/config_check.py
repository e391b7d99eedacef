"""
Config check use case — validate deploy.yml and report issues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from rollupctl.core.config.loader import ConfigError, find_config_file, load_config, load_credentials
from rollupctl.core.models.deployment import DeployConfig
from rollupctl.pipelines import orbit


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: DeployConfig | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "deployment_name": self.config.name if self.config else None,
            "credentials_file": self.config.credentials_file if self.config else None,
        }


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate deployment configuration and report issues.

    Args:
        config_path: Optional explicit path to deploy.yml.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
        if config_path is None:
            result.warnings.append("No deploy.yml found; defaults apply.")
    result.config_path = config_path

    try:
        config = load_config(config_path)
        result.config = config
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    # Credentials
    if config.credentials_file and not Path(config.credentials_file).is_file():
        result.errors.append(f"Credentials file not found: {config.credentials_file}")
    else:
        keys = orbit.credential_keys(config)
        try:
            credentials = load_credentials(config.credentials_file, keys)
        except ConfigError as e:
            result.errors.append(str(e))
        else:
            missing = [k for k in keys if not credentials.get(k)]
            if missing:
                result.warnings.append(
                    f"Orbit credentials not set (file or environment): {', '.join(missing)}"
                )

    # Orbit
    if config.orbit.parent_rpc_url and not _is_http_url(config.orbit.parent_rpc_url):
        result.errors.append(f"orbit.parent_rpc_url is not an http(s) URL: {config.orbit.parent_rpc_url}")
    if not config.orbit.compose_command:
        result.errors.append("orbit.compose_command is empty.")
    if not 0 < config.orbit.chain_rpc_port < 65536:
        result.errors.append(f"orbit.chain_rpc_port out of range: {config.orbit.chain_rpc_port}")

    # OP Stack
    if not config.op_stack.binaries:
        result.errors.append("op_stack.binaries is empty.")
    if not Path(config.op_stack.bundle).is_file():
        result.warnings.append(f"op_stack.bundle not found (relative to the working directory): {config.op_stack.bundle}")

    # Readiness
    readiness = config.readiness
    if readiness.timeout <= 0:
        result.errors.append("readiness.timeout must be positive.")
    if readiness.initial_delay <= 0:
        result.errors.append("readiness.initial_delay must be positive.")
    if readiness.initial_delay > readiness.max_delay:
        result.warnings.append("readiness.initial_delay is larger than readiness.max_delay.")

    if not Path(config.log_dir).is_dir():
        result.warnings.append(f"log_dir does not exist yet; it will be created: {config.log_dir}")

    result.valid = len(result.errors) == 0
    return result
