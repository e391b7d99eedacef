"""
OP Stack pipeline — op-deployer contracts plus four systemd services.

Layout under ``workdir`` (default /data):
    geth/             geth data directory and JWT secret
    op-node/          op-node working directory (copy of the JWT secret)
    .deployer/        op-deployer workdir: intent.toml, state.json,
                      genesis.json, rollup.json
    .wallet           KEY=value wallet file; also the services'
                      EnvironmentFile

The wallet file is generated once and reused on every rerun.  Private
keys from it reach the services only as ``${NAME}`` references that
systemd expands from the EnvironmentFile.
"""

from __future__ import annotations

import json
import logging
import secrets
from pathlib import Path
from typing import Any

from rollupctl.core.config.loader import parse_env_file
from rollupctl.core.context import PipelineContext
from rollupctl.core.engine.guard import BinariesPresent, DirectoryExists, FileExists, FileNonEmpty
from rollupctl.core.engine.orchestrator import Pipeline
from rollupctl.core.engine.patcher import append, write_atomic
from rollupctl.core.engine.step import Step
from rollupctl.core.errors import ExtractionFailure, PatchFailure
from rollupctl.core.models.deployment import DeployConfig, OpStackSettings
from rollupctl.core.models.patch import ConfigPatch
from rollupctl.core.models.service import ServiceSpec

logger = logging.getLogger(__name__)

NAME = "op-stack"
ARGUMENTS = ("L1_CHAIN_ID", "L2_CHAIN_ID", "L1_RPC_URL", "USERNAME")
USAGE = "rollupctl deploy op-stack <L1_CHAIN_ID> <L2_CHAIN_ID> <L1_RPC_URL> <USERNAME>"

# Values the wallet script prints
WALLET_KEYS = (
    "GS_ADMIN_ADDRESS",
    "GS_ADMIN_PRIVATE_KEY",
    "GS_BATCHER_ADDRESS",
    "GS_BATCHER_PRIVATE_KEY",
    "GS_PROPOSER_ADDRESS",
    "GS_PROPOSER_PRIVATE_KEY",
    "GS_SEQUENCER_ADDRESS",
    "GS_SEQUENCER_PRIVATE_KEY",
)

# intent.toml field → wallet key
INTENT_FIELDS = {
    "baseFeeVaultRecipient": "GS_ADMIN_ADDRESS",
    "l1FeeVaultRecipient": "GS_ADMIN_ADDRESS",
    "sequencerFeeVaultRecipient": "GS_ADMIN_ADDRESS",
    "systemConfigOwner": "GS_ADMIN_ADDRESS",
    "unsafeBlockSigner": "GS_ADMIN_ADDRESS",
    "batcher": "GS_BATCHER_ADDRESS",
    "proposer": "GS_PROPOSER_ADDRESS",
}

DISPUTE_GAME_FACTORY_FIELD = "disputeGameFactoryProxyAddress"


class OpStackLayout:
    """Filesystem locations derived from OpStackSettings."""

    def __init__(self, settings: OpStackSettings):
        self.workdir = settings.workdir.rstrip("/") or "/"
        self.geth_dir = f"{self.workdir}/geth"
        self.node_dir = f"{self.workdir}/op-node"
        self.deployer_dir = f"{self.workdir}/.deployer"
        self.wallet = f"{self.workdir}/.wallet"
        self.bin_dir = settings.bin_dir.rstrip("/")
        self.log_dir = settings.log_dir.rstrip("/")

    @property
    def geth_jwt(self) -> str:
        return f"{self.geth_dir}/jwt.txt"

    @property
    def node_jwt(self) -> str:
        return f"{self.node_dir}/jwt.txt"

    @property
    def intent(self) -> str:
        return f"{self.deployer_dir}/intent.toml"

    @property
    def state(self) -> str:
        return f"{self.deployer_dir}/state.json"

    @property
    def genesis(self) -> str:
        return f"{self.deployer_dir}/genesis.json"

    @property
    def rollup(self) -> str:
        return f"{self.deployer_dir}/rollup.json"


# ── In-process tasks ────────────────────────────────────────────


def write_jwt_secret(path: Path) -> None:
    """32 random bytes, hex encoded, no trailing newline; mode 0600."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch(mode=0o600, exist_ok=True)
    except OSError as e:
        raise PatchFailure(str(path), str(e)) from e
    write_atomic(path, secrets.token_hex(32))


def find_field(data: Any, field: str) -> str | None:
    """Depth-first search of a JSON document for a string ``field``."""
    if isinstance(data, dict):
        value = data.get(field)
        if isinstance(value, str) and value:
            return value
        children = data.values()
    elif isinstance(data, list):
        children = data
    else:
        return None
    for child in children:
        found = find_field(child, field)
        if found:
            return found
    return None


def load_wallet(path: Path, context: PipelineContext) -> None:
    """Copy wallet values into the context.

    Values already in the context (the command-line arguments) win; a
    wallet that disagrees with them is reported but not applied.
    """
    try:
        values = parse_env_file(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise PatchFailure(str(path), str(e)) from e

    for key, value in values.items():
        if key in context:
            if context[key] != value:
                logger.warning("Wallet value %s differs from the argument; using the argument", key)
            continue
        context.set(key, value, secret=key.endswith("PRIVATE_KEY"))

    missing = context.missing(list(WALLET_KEYS))
    if missing:
        raise ExtractionFailure(
            reason=f"wallet file {path} lacks {', '.join(missing)}",
            step_name="load-wallet",
        )
    logger.debug("Loaded %d wallet value(s) from %s", len(values), path)


# ── Pipeline ────────────────────────────────────────────────────


def build_opstack_pipeline(config: DeployConfig) -> Pipeline:
    settings = config.op_stack
    layout = OpStackLayout(settings)

    def generate_jwt(context: PipelineContext) -> None:
        write_jwt_secret(Path(layout.geth_jwt))

    def append_chain_params(context: PipelineContext) -> None:
        append(Path(layout.wallet), {
            "L1_CHAIN_ID": context.require("L1_CHAIN_ID"),
            "L2_CHAIN_ID": context.require("L2_CHAIN_ID"),
            "L1_RPC_URL": context.require("L1_RPC_URL"),
            "USERNAME": context.require("USERNAME"),
            "L1_RPC_KIND": context.require("L1_RPC_KIND"),
        })

    def read_wallet(context: PipelineContext) -> None:
        load_wallet(Path(layout.wallet), context)

    def record_dispute_game_factory(context: PipelineContext) -> None:
        state_path = Path(layout.state)
        try:
            data = json.loads(state_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise ExtractionFailure(
                reason=f"cannot read {state_path}: {e}",
                step_name="record-dispute-game-factory",
            ) from e
        address = find_field(data, DISPUTE_GAME_FACTORY_FIELD)
        if not address:
            raise ExtractionFailure(
                reason=f"{DISPUTE_GAME_FACTORY_FIELD} not found in {state_path}",
                step_name="record-dispute-game-factory",
            )
        context.set("L2OUTPUTORACLEPROXY", address, overwrite=True)
        append(Path(layout.wallet), {"L2OUTPUTORACLEPROXY": address})
        logger.info("L2OUTPUTORACLEPROXY: %s", address)

    deployer = ["op-deployer"]
    steps = [
        Step(
            name="create-directories",
            description="Creating data directories",
            commands=[["mkdir", "-p", layout.geth_dir, layout.node_dir]],
        ),
        Step(
            name="install-binaries",
            description="Extracting and installing binaries",
            commands=[
                ["unzip", "-o", settings.bundle],
                ["install", "-m", "0755", "-t", layout.bin_dir, *settings.binaries],
            ],
            guard=BinariesPresent(*settings.binaries),
        ),
        Step(
            name="generate-jwt-secret",
            description="Generating JWT secret",
            task=generate_jwt,
            guard=FileNonEmpty(layout.geth_jwt),
        ),
        Step(
            name="share-jwt-secret",
            description="Sharing JWT secret with op-node",
            commands=[["install", "-m", "0600", layout.geth_jwt, layout.node_jwt]],
        ),
        Step(
            name="install-foundry",
            description="Installing Foundry",
            commands=[
                ["curl", "-fsSL", "-o", f"{layout.workdir}/.foundry-installer", settings.foundry_installer_url],
                ["bash", f"{layout.workdir}/.foundry-installer"],
                [str(Path.home() / ".foundry" / "bin" / "foundryup")],
            ],
            guard=BinariesPresent("forge"),
        ),
        Step(
            name="generate-wallets",
            description="Generating wallets",
            commands=[["bash", settings.wallet_script]],
            stdout_to=layout.wallet,
            task=append_chain_params,
            guard=FileNonEmpty(layout.wallet),
        ),
        Step(
            name="load-wallet",
            description="Loading wallet",
            task=read_wallet,
            provides=list(WALLET_KEYS),
        ),
        Step(
            name="init-deployer",
            description="Initializing OP Deployer",
            commands=[[
                *deployer, "init",
                "--l1-chain-id", "{L1_CHAIN_ID}",
                "--l2-chain-ids", "{L2_CHAIN_ID}",
                "--workdir", layout.deployer_dir,
            ]],
            guard=FileExists(layout.intent),
        ),
        Step(
            name="configure-intent",
            description="Injecting wallet addresses into intent.toml",
            patches=[
                ConfigPatch(
                    target=layout.intent,
                    style="toml",
                    assign=[(field, f"{{{key}}}") for field, key in INTENT_FIELDS.items()],
                ),
            ],
        ),
        Step(
            name="apply-deployment",
            description="Applying deployment",
            commands=[[
                *deployer, "apply",
                "--workdir", layout.deployer_dir,
                "--l1-rpc-url", "{L1_RPC_URL}",
                "--private-key", "{GS_ADMIN_PRIVATE_KEY}",
            ]],
        ),
        Step(
            name="record-dispute-game-factory",
            description="Reading dispute game factory address",
            task=record_dispute_game_factory,
            provides=["L2OUTPUTORACLEPROXY"],
        ),
        Step(
            name="inspect-genesis",
            description="Writing genesis.json",
            commands=[[*deployer, "inspect", "genesis", "--workdir", layout.deployer_dir, "{L2_CHAIN_ID}"]],
            stdout_to=layout.genesis,
        ),
        Step(
            name="inspect-rollup",
            description="Writing rollup.json",
            commands=[[*deployer, "inspect", "rollup", "--workdir", layout.deployer_dir, "{L2_CHAIN_ID}"]],
            stdout_to=layout.rollup,
        ),
        Step(
            name="init-geth",
            description="Initializing geth",
            commands=[[
                "geth", "init",
                "--state.scheme=hash",
                f"--datadir={layout.geth_dir}/{{USERNAME}}",
                layout.genesis,
            ]],
            guard=DirectoryExists(f"{layout.geth_dir}/{{USERNAME}}/geth/chaindata"),
        ),
    ]

    return Pipeline(
        name=NAME,
        steps=steps,
        required=list(ARGUMENTS) + ["L1_RPC_KIND"],
        usage=USAGE,
        services=lambda context: build_services(layout, context),
        unit_dir=settings.unit_dir,
    )


# ── Services ────────────────────────────────────────────────────


def build_services(layout: OpStackLayout, context: PipelineContext) -> list[ServiceSpec]:
    """geth, op-node, op-batcher and op-proposer, in start order."""
    l1_rpc = context.require("L1_RPC_URL")
    username = context.require("USERNAME")

    def spec(name: str, description: str, workdir: str, args: list[str]) -> ServiceSpec:
        return ServiceSpec(
            name=name,
            description=description,
            working_directory=workdir,
            executable=f"{layout.bin_dir}/{name}",
            args=args,
            environment_file=layout.wallet,
            log_path=f"{layout.log_dir}/{name}.log",
        )

    return [
        spec("geth", "Ethereum Geth Testnet Node", layout.geth_dir, [
            "--datadir", f"{layout.geth_dir}/{username}",
            "--http", "--http.corsdomain=*", "--http.vhosts=*", "--http.addr=0.0.0.0",
            "--http.api=web3,debug,eth,txpool,net,engine,miner",
            "--ws", "--ws.addr=0.0.0.0", "--ws.port=8546", "--ws.origins=*",
            "--ws.api=debug,eth,txpool,net,engine",
            "--syncmode=full", "--gcmode=archive",
            "--nodiscover", "--maxpeers=0", f"--networkid={context.require('L2_CHAIN_ID')}",
            "--authrpc.vhosts=*", "--authrpc.addr=0.0.0.0", "--authrpc.port=8551",
            f"--authrpc.jwtsecret={layout.geth_jwt}",
            "--rollup.disabletxpoolgossip=true",
        ]),
        spec("op-node", "Optimism Node", layout.node_dir, [
            "--l2=http://localhost:8551",
            f"--l2.jwt-secret={layout.node_jwt}",
            "--sequencer.enabled",
            "--sequencer.l1-confs=5",
            "--verifier.l1-confs=4",
            f"--rollup.config={layout.rollup}",
            "--rpc.addr=0.0.0.0",
            "--p2p.disable",
            "--rpc.enable-admin",
            "--p2p.sequencer.key=${GS_SEQUENCER_PRIVATE_KEY}",
            f"--l1={l1_rpc}",
            f"--l1.rpckind={context.require('L1_RPC_KIND')}",
            "--l1.beacon.ignore",
        ]),
        spec("op-batcher", "Optimism Batcher", layout.node_dir, [
            "--l2-eth-rpc=http://localhost:8545",
            "--rollup-rpc=http://localhost:9545",
            "--poll-interval=1s",
            "--sub-safety-margin=6",
            "--num-confirmations=1",
            "--safe-abort-nonce-too-low-count=3",
            "--resubmission-timeout=30s",
            "--rpc.addr=0.0.0.0", "--rpc.port=8548",
            "--rpc.enable-admin",
            "--max-channel-duration=25",
            f"--l1-eth-rpc={l1_rpc}",
            "--private-key=${GS_BATCHER_PRIVATE_KEY}",
        ]),
        spec("op-proposer", "Optimism Proposer", layout.node_dir, [
            "--poll-interval=12s",
            "--rpc.port=8560",
            "--rollup-rpc=http://localhost:9545",
            f"--l2oo-address={context.require('L2OUTPUTORACLEPROXY')}",
            "--private-key=${GS_PROPOSER_PRIVATE_KEY}",
            f"--l1-eth-rpc={l1_rpc}",
        ]),
    ]


def defaults(config: DeployConfig) -> dict[str, str]:
    """Context values that come from configuration rather than arguments."""
    return {"L1_RPC_KIND": config.op_stack.l1_rpc_kind}
