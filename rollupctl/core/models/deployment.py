"""
Deployment configuration — loaded from deploy.yml.

Every field has a default that matches a stock single-host install,
so a missing deploy.yml is valid.  Secrets are never configured here:
``credentials_file`` points at a KEY=value file that holds them.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class OrbitSettings(BaseModel):
    """Arbitrum Orbit (docker-compose) deployment."""

    base_dir: str = "/data/raas"
    repository: str = "https://github.com/ajaykumar1007/op-cmd.git"
    sdk_packages: list[str] = Field(
        default_factory=lambda: ["@arbitrum/orbit-sdk", "viem@^1.20.0"]
    )
    nitro_image: str = "offchainlabs/nitro-node:v3.5.1-8f247fd"
    parent_rpc_url: str | None = None
    default_parent_rpc_url: str = "https://rpc.sepolia.org"
    compose_command: list[str] = Field(default_factory=lambda: ["docker-compose"])
    token_bridge: bool = True
    chain_rpc_port: int = 8449
    node_ip: str | None = None


class OpStackSettings(BaseModel):
    """OP Stack (op-deployer + systemd) deployment."""

    workdir: str = "/data"
    bundle: str = "op-cmd.zip"
    binaries: list[str] = Field(
        default_factory=lambda: ["op-deployer", "op-node", "op-proposer", "op-batcher", "geth"]
    )
    wallet_script: str = "wallet.sh"
    foundry_installer_url: str = "https://foundry.paradigm.xyz"
    bin_dir: str = "/usr/local/bin"
    unit_dir: str = "/etc/systemd/system"
    log_dir: str = "/var/log"
    l1_rpc_kind: str = "any"


class ReadinessSettings(BaseModel):
    """Bounded polling for services started by the pipeline."""

    timeout: float = 300.0
    initial_delay: float = 2.0
    max_delay: float = 30.0


class DeployConfig(BaseModel):
    """Root configuration — everything in deploy.yml."""

    name: str = "rollup"
    log_dir: str = "."
    state_dir: str = ".state"
    credentials_file: str | None = None

    orbit: OrbitSettings = Field(default_factory=OrbitSettings)
    op_stack: OpStackSettings = Field(default_factory=OpStackSettings)
    readiness: ReadinessSettings = Field(default_factory=ReadinessSettings)
