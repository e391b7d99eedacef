"""
Unit generator — render a systemd unit from a ServiceSpec.

The layout matches what operators already run by hand: a simple
service under root, environment from the wallet file, output appended
to a log under /var/log and restart-on-failure with a fixed backoff.
"""

from __future__ import annotations

import re

from rollupctl.core.models.service import ServiceSpec

_UNIT_TEMPLATE = """\
[Unit]
Description={description}
After={after}

[Service]
Type=simple
User={user}
WorkingDirectory={working_directory}
{environment}ExecStart={exec_start}
StandardOutput=append:{log_path}
StandardError=append:{log_path}
Restart={restart}
RestartSec={restart_sec}

[Install]
WantedBy=multi-user.target
"""

# ${NAME} references are expanded by systemd from EnvironmentFile.
_ENV_REF = re.compile(r"\$(?!\{[A-Za-z_][A-Za-z0-9_]*\})")
_NEEDS_QUOTES = re.compile(r"[\s\"'\;]")


def quote_arg(arg: str) -> str:
    """Quote one ExecStart argument per systemd's command-line rules.

    ``%`` specifiers and bare ``$`` are escaped; ``${NAME}`` is kept.
    """
    escaped = _ENV_REF.sub("$$", arg.replace("%", "%%"))
    if arg == "" or _NEEDS_QUOTES.search(escaped):
        escaped = '"' + escaped.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return escaped


def render_exec_start(spec: ServiceSpec) -> str:
    """Executable plus one argument per continuation line."""
    parts = [quote_arg(spec.executable)] + [quote_arg(a) for a in spec.args]
    return " \\\n  ".join(parts)


def render_unit(spec: ServiceSpec) -> str:
    environment = f"EnvironmentFile={spec.environment_file}\n" if spec.environment_file else ""
    return _UNIT_TEMPLATE.format(
        description=spec.description or spec.name,
        after=" ".join(spec.after),
        user=spec.user,
        working_directory=spec.working_directory,
        environment=environment,
        exec_start=render_exec_start(spec),
        log_path=spec.effective_log_path,
        restart=spec.restart_policy,
        restart_sec=spec.restart_sec,
    )

