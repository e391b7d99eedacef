"""
rollupctl — CLI entrypoint.

Usage:
    rollupctl --help
    rollupctl deploy orbit <CHAIN_ID> <CHAIN_NAME>
    rollupctl deploy op-stack <L1_CHAIN_ID> <L2_CHAIN_ID> <L1_RPC_URL> <USERNAME>
    rollupctl status
    rollupctl config check
"""

from __future__ import annotations

import json
import os
import re
import signal
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click

from rollupctl import __version__
from rollupctl.core.observability.logging_config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="rollupctl")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Only show errors on the console.")
@click.option("--debug", is_flag=True, help="Enable debug logging, including command output.")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to deploy.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """rollupctl — provision rollup chains on a single host."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("ROLLUPCTL_LOG_LEVEL", "INFO")

    setup_logging(
        level=level,
        log_file=os.environ.get("ROLLUPCTL_LOG_FILE"),
        log_file_level=os.environ.get("ROLLUPCTL_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


# ── Deploy ──────────────────────────────────────────────────────


@contextmanager
def _cancel_on_signals() -> Iterator:
    """Yield a CancelToken set by SIGINT/SIGTERM for the duration."""
    from rollupctl.core.engine.readiness import CancelToken

    token = CancelToken()

    def _handler(signum: int, _frame: object) -> None:
        token.cancel(f"received {signal.Signals(signum).name}")

    previous = {sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield token
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def _run_deploy(ctx: click.Context, pipeline: str, arguments: dict, dry_run: bool, as_json: bool) -> None:
    from rollupctl.core.use_cases.deploy import run_deployment

    with _cancel_on_signals() as token:
        result = run_deployment(
            pipeline,
            arguments,
            config_path=ctx.obj.get("config_path"),
            dry_run=dry_run,
            cancel=token,
        )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    report = result.report
    if report is None or not report.validated:
        click.secho(f"❌ {result.error}", fg="red", err=True)
        sys.exit(1)

    quiet = ctx.obj.get("quiet", False)
    if not quiet:
        click.echo()
        label = f"{pipeline} (dry run)" if report.dry_run else pipeline
        click.secho(f"🚀 {label} — run {report.run_id}", fg="cyan", bold=True)
        for step in report.steps:
            icon, color = {
                "ok": ("✓", "green"),
                "skipped": ("○", "white"),
                "failed": ("✗", "red"),
            }.get(step.status, ("?", "yellow"))
            click.secho(f"   {icon} {step.name}", fg=color, nl=False)
            click.echo(f"  {step.detail}" if step.detail else "")
        if report.services:
            for outcome in report.services.outcomes:
                color = "red" if outcome.status == "failed" else "green"
                click.secho(f"   ⚙ {outcome.name}: {outcome.status}", fg=color)
        click.echo()

    for warning in result.warnings:
        click.secho(f"⚠️  {warning}", fg="yellow")

    if report.ok:
        click.secho("✅ Deployment completed.", fg="green", bold=True)
        if report.log_file:
            click.echo(f"   Logs: {report.log_file}")
        return

    click.secho(f"❌ Deployment aborted at {report.failed_step or 'unknown step'}", fg="red", bold=True)
    click.echo(f"   {report.error}")
    if report.log_excerpt:
        click.echo()
        for line in report.log_excerpt.splitlines():
            click.echo(f"   │ {line}")
    if report.log_file:
        click.echo(f"\n   Check {report.log_file} for details.")
    sys.exit(1)


@cli.group()
def deploy() -> None:
    """Deploy a rollup chain."""


@deploy.command("orbit")
@click.argument("chain_id", required=False)
@click.argument("chain_name", required=False)
@click.option("--dry-run", is_flag=True, help="Log every step without changing anything.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def deploy_orbit(
    ctx: click.Context,
    chain_id: str | None,
    chain_name: str | None,
    dry_run: bool,
    as_json: bool,
) -> None:
    """Deploy an Arbitrum Orbit chain (docker-compose)."""
    _run_deploy(
        ctx,
        "orbit",
        {"CHAIN_ID": chain_id, "CHAIN_NAME": chain_name},
        dry_run,
        as_json,
    )


@deploy.command("op-stack")
@click.argument("l1_chain_id", required=False)
@click.argument("l2_chain_id", required=False)
@click.argument("l1_rpc_url", required=False)
@click.argument("username", required=False)
@click.option("--dry-run", is_flag=True, help="Log every step without changing anything.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def deploy_opstack(
    ctx: click.Context,
    l1_chain_id: str | None,
    l2_chain_id: str | None,
    l1_rpc_url: str | None,
    username: str | None,
    dry_run: bool,
    as_json: bool,
) -> None:
    """Deploy an OP Stack chain (op-deployer + systemd)."""
    _run_deploy(
        ctx,
        "op-stack",
        {
            "L1_CHAIN_ID": l1_chain_id,
            "L2_CHAIN_ID": l2_chain_id,
            "L1_RPC_URL": l1_rpc_url,
            "USERNAME": username,
        },
        dry_run,
        as_json,
    )


# ── Status / history ────────────────────────────────────────────


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, as_json: bool) -> None:
    """Show the last recorded deployment runs."""
    from rollupctl.core.use_cases.status import get_status

    result = get_status(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    config, state = result.config, result.state
    if result.error or config is None:
        click.secho(f"❌ {result.error or 'No configuration loaded.'}", fg="red")
        sys.exit(1)

    click.secho(f"\n📋 {config.name}", fg="cyan", bold=True)

    if state is None or not result.has_runs:
        click.echo("   No deployments recorded yet.")
        click.echo()
        return

    for name, run in state.runs_by_pipeline.items():
        color = "green" if run.ok else "red"
        dry = " (dry run)" if run.dry_run else ""
        click.echo(f"   {name}: ", nl=False)
        click.secho(f"{run.state}{dry}", fg=color, nl=False)
        click.echo(f"  {run.run_id}  {run.ended_at}")
        if run.failed_step:
            click.echo(f"     failed at {run.failed_step}: {run.error}")
        for service, svc_status in run.services.items():
            click.echo(f"     ⚙ {service}: {svc_status}")
        if run.log_file:
            click.echo(f"     log: {run.log_file}")

    click.echo()


@cli.command()
@click.option("-n", "count", default=10, show_default=True, help="Number of entries.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def history(ctx: click.Context, count: int, as_json: bool) -> None:
    """Show recent deployment runs from the audit ledger."""
    from rollupctl.core.use_cases.status import get_history

    result = get_history(config_path=ctx.obj.get("config_path"), n=count)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    if not result.entries:
        click.echo("No deployment history.")
        return

    click.secho(f"\n📜 Last {len(result.entries)} of {result.total} run(s)", fg="cyan", bold=True)
    for entry in reversed(result.entries):
        color = "green" if entry.status == "done" else "red"
        dry = " (dry run)" if entry.dry_run else ""
        click.echo(f"   {entry.timestamp}  {entry.pipeline:<9} ", nl=False)
        click.secho(f"{entry.status}{dry}", fg=color, nl=False)
        click.echo(f"  {entry.steps_ok}/{entry.steps_total} steps")
        if entry.failed_step:
            click.echo(f"     failed at {entry.failed_step}")
    click.echo()


# ── Config ──────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Deployment configuration commands."""


@config.command("check")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_check(ctx: click.Context, as_json: bool) -> None:
    """Validate deploy.yml configuration."""
    from rollupctl.core.use_cases.config_check import check_config

    result = check_config(config_path=ctx.obj.get("config_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(0 if result.valid else 1)

    if result.valid:
        click.secho("✅ Configuration is valid", fg="green", bold=True)
        if result.config is not None:
            click.echo(f"   Deployment: {result.config.name}")
        if result.config_path:
            click.echo(f"   File: {result.config_path}")
    else:
        click.secho("❌ Configuration errors:", fg="red", bold=True)
        for err in result.errors:
            click.echo(f"   • {err}")

    if result.warnings:
        click.echo()
        click.secho("⚠️  Warnings:", fg="yellow")
        for warn in result.warnings:
            click.echo(f"   • {warn}")

    if not result.valid:
        click.echo()
        sys.exit(1)

    click.echo()


# ── Extract ─────────────────────────────────────────────────────


@cli.command()
@click.argument("source", type=click.File("r"), default="-")
@click.option("--pattern", "-p", default=None, help="Regex to search for (default: transaction hash).")
@click.option("--all", "all_matches", is_flag=True, help="Print every match, one per line.")
def extract(source, pattern: str | None, all_matches: bool) -> None:
    """Print the first transaction hash found in SOURCE (default: stdin)."""
    from rollupctl.core.engine.extractor import TX_HASH_PATTERN, extract_all
    from rollupctl.core.engine.extractor import extract as find_first
    from rollupctl.core.errors import ExtractionFailure

    text = source.read()
    regex = pattern or TX_HASH_PATTERN
    try:
        re.compile(regex)
    except re.error as e:
        click.secho(f"❌ Invalid pattern: {e}", fg="red", err=True)
        sys.exit(1)

    if all_matches:
        matches = extract_all(text, regex)
        if not matches:
            click.secho("❌ No match found.", fg="red", err=True)
            sys.exit(1)
        for match in matches:
            click.echo(match)
        return

    try:
        click.echo(find_first(text, regex))
    except ExtractionFailure as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
