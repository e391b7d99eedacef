"""
Orbit pipeline — an Arbitrum Orbit chain run by docker-compose.

Steps (in order):
    install-toolchain         Node.js, npm, Yarn               guard: binaries on PATH
    clone-repository          chain repository                 guard: checkout exists
    configure-contracts-env   contracts/.env from .env.example
    install-contract-deps     yarn install + SDK packages
    deploy-contracts          yarn dev → TX_HASH
    configure-prepare-env     prepare/.env with TX_HASH
    prepare-chain-config      yarn dev in prepare/
    patch-parent-rpc          node-config.json parent RPC      (when configured)
    pull-nitro-image          docker pull
    configure-root-env        CHAIN_ID, ARBITRUM_VOLUME
    start-chain               docker-compose up -d
  token bridge (optional):
    resolve-node-ip           NODE_IP from config or the host
    wait-for-chain-rpc        bounded polling of the chain RPC
    configure-token-bridge-env
    deploy-token-bridge       yarn dev in token-bridge/
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from rollupctl.core.context import PipelineContext
from rollupctl.core.engine.guard import BinariesPresent, DirectoryExists
from rollupctl.core.engine.orchestrator import Pipeline
from rollupctl.core.engine.readiness import CancelToken, Probe, primary_ip, rpc_probe, wait_until_ready
from rollupctl.core.engine.step import Extraction, Step
from rollupctl.core.errors import StepFailure
from rollupctl.core.models.deployment import DeployConfig
from rollupctl.core.models.patch import ConfigPatch

logger = logging.getLogger(__name__)

NAME = "orbit"
ARGUMENTS = ("CHAIN_ID", "CHAIN_NAME")
USAGE = "rollupctl deploy orbit <CHAIN_ID> <CHAIN_NAME>"

SECRET_KEYS = ("DEPLOYER_PRIVATE_KEY", "BATCH_POSTER_PRIVATE_KEY", "VALIDATOR_PRIVATE_KEY")
TOKEN_BRIDGE_KEYS = ("ROLLUP_ADDRESS",)


def credential_keys(config: DeployConfig) -> tuple[str, ...]:
    """Credentials this pipeline reads with the current configuration."""
    keys = SECRET_KEYS
    if config.orbit.token_bridge:
        keys += TOKEN_BRIDGE_KEYS
    return keys


def _signer_assignments() -> list[tuple[str, str]]:
    return [(key, f"{{{key}}}") for key in SECRET_KEYS]


def build_orbit_pipeline(
    config: DeployConfig,
    probe: Probe | None = None,
    cancel: CancelToken | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Pipeline:
    """Declare the Orbit deployment for ``config``.

    ``probe`` replaces the chain RPC readiness probe (tests pass a stub).
    """
    orbit = config.orbit
    base = orbit.base_dir.rstrip("/")
    contracts = f"{base}/contracts"
    prepare = f"{base}/prepare"
    bridge = f"{base}/token-bridge"
    env_example = f"{base}/.env.example"
    sdk = ["yarn", "add", *orbit.sdk_packages]

    steps = [
        Step(
            name="install-toolchain",
            description="Installing Node.js and Yarn",
            commands=[
                ["apt-get", "update"],
                ["apt-get", "install", "-y", "nodejs", "npm"],
                ["npm", "install", "--global", "yarn"],
            ],
            env={"DEBIAN_FRONTEND": "noninteractive"},
            guard=BinariesPresent("node", "npm", "yarn"),
        ),
        Step(
            name="clone-repository",
            description="Cloning chain repository",
            commands=[["git", "clone", orbit.repository, base]],
            guard=DirectoryExists(base),
        ),
        Step(
            name="configure-contracts-env",
            description="Configuring contracts/.env",
            patches=[
                ConfigPatch(
                    target=f"{contracts}/.env",
                    template=env_example,
                    delete=["ORBIT_DEPLOYMENT_TRANSACTION_HASH"],
                    assign=[("CHAIN_ID", "{CHAIN_ID}"), *_signer_assignments()],
                ),
            ],
        ),
        Step(
            name="install-contract-deps",
            description="Installing contract dependencies",
            commands=[["yarn", "install"], sdk],
            cwd=contracts,
        ),
        Step(
            name="deploy-contracts",
            description="Running yarn dev for contract deployment",
            commands=[["yarn", "dev"]],
            cwd=contracts,
            extract=Extraction("TX_HASH"),
        ),
        Step(
            name="configure-prepare-env",
            description="Preparing prepare/.env configuration",
            patches=[
                ConfigPatch(
                    target=f"{prepare}/.env",
                    template=env_example,
                    assign=[
                        ("ORBIT_DEPLOYMENT_TRANSACTION_HASH", "{TX_HASH}"),
                        ("CHAIN_ID", "{CHAIN_ID}"),
                        *_signer_assignments(),
                    ],
                ),
            ],
        ),
        Step(
            name="prepare-chain-config",
            description="Installing prepare dependencies",
            commands=[["yarn", "install"], sdk, ["yarn", "dev"]],
            cwd=prepare,
        ),
    ]

    if orbit.parent_rpc_url:
        steps.append(
            Step(
                name="patch-parent-rpc",
                description="Patching parent chain RPC in node-config.json",
                patches=[
                    ConfigPatch(
                        target=f"{prepare}/node-config.json",
                        replace=[(
                            _json_url(orbit.default_parent_rpc_url),
                            _json_url(orbit.parent_rpc_url),
                        )],
                    ),
                ],
            )
        )

    steps += [
        Step(
            name="pull-nitro-image",
            description="Pulling Nitro node Docker image",
            commands=[["docker", "pull", orbit.nitro_image]],
        ),
        Step(
            name="configure-root-env",
            description="Updating root .env",
            patches=[
                ConfigPatch(
                    target=f"{base}/.env",
                    assign=[("CHAIN_ID", "{CHAIN_ID}"), ("ARBITRUM_VOLUME", "{CHAIN_NAME}")],
                ),
            ],
        ),
        Step(
            name="start-chain",
            description="Starting services with docker-compose",
            commands=[[*orbit.compose_command, "up", "-d"]],
            cwd=base,
        ),
    ]

    if orbit.token_bridge:
        steps += _token_bridge_steps(config, bridge, sdk, probe, cancel, sleep)

    required = list(ARGUMENTS) + list(credential_keys(config))
    return Pipeline(name=NAME, steps=steps, required=required, usage=USAGE)


def _token_bridge_steps(
    config: DeployConfig,
    bridge: str,
    sdk: list[str],
    probe: Probe | None,
    cancel: CancelToken | None,
    sleep: Callable[[float], None],
) -> list[Step]:
    orbit = config.orbit
    readiness = config.readiness
    rpc_url = f"http://127.0.0.1:{orbit.chain_rpc_port}"

    def resolve_node_ip(context: PipelineContext) -> None:
        try:
            ip = orbit.node_ip or primary_ip()
        except OSError as e:
            raise StepFailure("resolve-node-ip", None, message=f"Cannot determine node IP: {e}") from e
        context.set("NODE_IP", ip, overwrite=True)
        logger.info("Node IP: %s", ip)

    def wait_for_chain(context: PipelineContext) -> None:
        wait_until_ready(
            probe or rpc_probe(rpc_url),
            target=f"chain RPC at {rpc_url}",
            timeout=readiness.timeout,
            initial_delay=readiness.initial_delay,
            max_delay=readiness.max_delay,
            cancel=cancel,
            sleep=sleep,
        )

    return [
        Step(
            name="resolve-node-ip",
            description="Resolving node IP",
            task=resolve_node_ip,
            provides=["NODE_IP"],
        ),
        Step(
            name="wait-for-chain-rpc",
            description="Waiting for the chain RPC",
            task=wait_for_chain,
        ),
        Step(
            name="configure-token-bridge-env",
            description="Configuring token-bridge/.env",
            patches=[
                ConfigPatch(
                    target=f"{bridge}/.env",
                    template=f"{bridge}/.env.example",
                    assign=[
                        ("ORBIT_CHAIN_RPC", f"http://{{NODE_IP}}:{orbit.chain_rpc_port}"),
                        ("ORBIT_CHAIN_ID", "{CHAIN_ID}"),
                        ("ORBIT_NETWORK_NAME", "{CHAIN_NAME}"),
                        ("ORBIT_CHAIN_LABEL", "{CHAIN_NAME}"),
                        ("ROLLUP_ADDRESS", "{ROLLUP_ADDRESS}"),
                        ("ROLLUP_OWNER_PRIVATE_KEY", "{DEPLOYER_PRIVATE_KEY}"),
                    ],
                ),
            ],
        ),
        Step(
            name="deploy-token-bridge",
            description="Setting up token-bridge",
            commands=[["yarn", "install"], sdk, ["yarn", "dev"]],
            cwd=bridge,
        ),
    ]


def _json_url(url: str) -> str:
    # Braces are doubled: patch values are rendered against the context.
    return f'"url": "{url}"'.replace("{", "{{").replace("}", "}}")
