"""
Config patcher — exact, in-place edits of flat configuration files.

Rules for ``KEY=value`` files:
    - A substitution rewrites every line that assigns ``KEY`` (``KEY=``
      at the start of the line) to ``KEY=<value>``.
    - A key that isn't in the file is NOT inserted.  Templates declare
      every key up front.
    - Every other byte (whitespace, quoting, comments, line endings,
      line order) is preserved.
    - Patching twice with the same values gives the same file as
      patching once.

Writes are atomic: the new content is built in memory and moved into
place with a rename, so an interrupted run never leaves a
half-written file behind.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from collections.abc import Iterable
from pathlib import Path

from rollupctl.core.context import PipelineContext
from rollupctl.core.errors import PatchFailure
from rollupctl.core.models.patch import ConfigPatch

logger = logging.getLogger(__name__)


# ── File I/O ────────────────────────────────────────────────────


def _read(path: Path) -> str:
    if not path.is_file():
        raise PatchFailure(str(path), "file not found")
    try:
        # newline="" keeps \r\n endings intact
        with path.open("r", encoding="utf-8", newline="") as f:
            return f.read()
    except OSError as e:
        raise PatchFailure(str(path), str(e)) from e


def write_atomic(path: Path, content: str, mode_from: Path | None = None) -> None:
    """Write via temp file + rename, keeping the mode of ``mode_from`` or ``path``."""
    try:
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(content)
            source = mode_from if mode_from is not None and mode_from.exists() else None
            if source is None and path.exists():
                source = path
            if source is not None:
                shutil.copymode(source, tmp)
            os.replace(tmp, path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
    except OSError as e:
        raise PatchFailure(str(path), str(e)) from e


def _split_ending(line: str) -> tuple[str, str]:
    body = line.rstrip("\r\n")
    return body, line[len(body):]


# ── Pure text transforms ────────────────────────────────────────


def _assigns(body: str, key: str) -> bool:
    return body.startswith(f"{key}=")


def substitute_env(text: str, substitutions: Iterable[tuple[str, str]]) -> str:
    """Apply ``KEY=value`` substitutions to file content."""
    lines = text.splitlines(keepends=True)
    for key, value in substitutions:
        found = False
        for i, line in enumerate(lines):
            body, ending = _split_ending(line)
            if _assigns(body, key):
                lines[i] = f"{key}={value}{ending}"
                found = True
        if not found:
            logger.debug("Key %s not present; left absent", key)
    return "".join(lines)


def delete_env(text: str, keys: Iterable[str]) -> str:
    """Drop every line assigning one of ``keys``."""
    keys = list(keys)
    kept = [
        line
        for line in text.splitlines(keepends=True)
        if not any(_assigns(_split_ending(line)[0], k) for k in keys)
    ]
    return "".join(kept)


def substitute_quoted_fields(text: str, fields: Iterable[tuple[str, str]]) -> str:
    """Set ``field = "value"`` lines (TOML style), keeping indentation."""
    for field, value in fields:
        regex = re.compile(rf'^(\s*{re.escape(field)}\s*=\s*)"[^"]*"', re.MULTILINE)
        text, count = regex.subn(lambda m: f'{m.group(1)}"{value}"', text)
        if count == 0:
            logger.debug("Field %s not present; left absent", field)
    return text


def replace_literals(text: str, replacements: Iterable[tuple[str, str]]) -> str:
    for old, new in replacements:
        text = text.replace(old, new)
    return text


# ── File-level operations ───────────────────────────────────────


def patch(path: Path, substitutions: dict[str, str] | Iterable[tuple[str, str]], deletions: Iterable[str] = ()) -> None:
    """Delete, then substitute, keys in a ``KEY=value`` file.

    Raises:
        PatchFailure: If the file is missing or cannot be written.
    """
    items = list(substitutions.items()) if isinstance(substitutions, dict) else list(substitutions)
    original = _read(path)
    updated = substitute_env(delete_env(original, deletions), items)
    if updated != original:
        write_atomic(path, updated)


def delete_keys(path: Path, keys: Iterable[str]) -> None:
    """Remove every line assigning one of ``keys``. Absent keys are a no-op."""
    original = _read(path)
    updated = delete_env(original, keys)
    if updated != original:
        write_atomic(path, updated)


def append(path: Path, values: dict[str, str]) -> None:
    """Set keys in a ``KEY=value`` file, appending any that are missing.

    Unlike ``patch`` this creates the file and inserts keys.  Used for
    files rollupctl owns (the wallet file), never for templates.
    """
    original = _read(path) if path.exists() else ""
    present = {
        _split_ending(line)[0].partition("=")[0]
        for line in original.splitlines()
        if "=" in line
    }
    updated = substitute_env(original, [(k, v) for k, v in values.items() if k in present])
    missing = [(k, v) for k, v in values.items() if k not in present]
    if missing:
        if updated and not updated.endswith("\n"):
            updated += "\n"
        updated += "".join(f"{k}={v}\n" for k, v in missing)
    if updated != original:
        path.parent.mkdir(parents=True, exist_ok=True)
        write_atomic(path, updated)


class EnvPatcher:
    """Applies declared ConfigPatches against a pipeline context."""

    def __init__(self, dry_run: bool = False):
        self.dry_run = dry_run

    def apply(self, config_patch: ConfigPatch, context: PipelineContext) -> None:
        """Resolve placeholders and apply one ConfigPatch atomically.

        Every value is resolved before the file is touched, so a missing
        context value leaves the file unchanged.
        """
        target = Path(context.render(config_patch.target))
        template = Path(context.render(config_patch.template)) if config_patch.template else None
        assign = [(k, context.render(v)) for k, v in config_patch.assign]
        replace = [(context.render(o), context.render(n)) for o, n in config_patch.replace]

        if self.dry_run:
            for key, value in assign:
                logger.info("[dry-run] %s: %s=%s", target, key, context.redact(value))
            for key in config_patch.delete:
                logger.info("[dry-run] %s: delete %s", target, key)
            return

        original = _read(template) if template is not None else _read(target)
        if config_patch.style == "toml":
            updated = substitute_quoted_fields(original, assign)
        else:
            updated = substitute_env(delete_env(original, config_patch.delete), assign)
        updated = replace_literals(updated, replace)

        if template is not None or updated != original:
            write_atomic(target, updated, mode_from=template)
        logger.debug("Patched %s (%d keys)", target, len(assign))
