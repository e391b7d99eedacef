"""
Pipeline context — the values threaded through one deployment run.

Earlier steps write values (chain ids, the extracted transaction hash,
the node IP); later steps, config patches and service specs read them.
One context per run, owned by the orchestrator.

Rules:
    - Keys are write-once.  A later step that supersedes a value must
      say so with ``overwrite=True``.
    - Readers that need a value use ``require()``, which fails fast on
      an absent OR empty value instead of rendering an empty string.
    - Keys marked secret are redacted from logs and persisted state.
"""

from __future__ import annotations

import logging
import string
from collections.abc import Iterator, Mapping

from rollupctl.core.errors import DeployError, MissingValueError

logger = logging.getLogger(__name__)

_REDACTED = "****"

# Secret values shorter than this are not scrubbed from free text
# (too likely to collide with ordinary output).
_MIN_SCRUB_LEN = 8


class PipelineContext(Mapping[str, str]):
    """Write-once string mapping with fail-fast reads."""

    def __init__(self, initial: Mapping[str, str] | None = None):
        self._values: dict[str, str] = {}
        self._secrets: set[str] = set()
        if initial:
            for key, value in initial.items():
                self.set(key, value)

    # ── Mapping protocol ────────────────────────────────────────

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    # ── Writes ──────────────────────────────────────────────────

    def set(self, key: str, value: str, *, overwrite: bool = False, secret: bool = False) -> None:
        """Store a value.

        Raises:
            DeployError: If the key already holds a different value and
                ``overwrite`` is False.
        """
        if key in self._values and not overwrite and self._values[key] != value:
            raise DeployError(
                f"Context value '{key}' is already set; pass overwrite=True to supersede it"
            )
        if key in self._values and overwrite:
            logger.debug("Superseding context value %s", key)
        self._values[key] = str(value)
        if secret:
            self._secrets.add(key)

    def set_secret(self, key: str, value: str, *, overwrite: bool = False) -> None:
        self.set(key, value, overwrite=overwrite, secret=True)

    def mark_secret(self, key: str) -> None:
        self._secrets.add(key)

    # ── Reads ───────────────────────────────────────────────────

    def require(self, key: str) -> str:
        """Return a value, failing fast if it is absent or empty."""
        value = self._values.get(key, "")
        if not value:
            raise MissingValueError(key)
        return value

    def missing(self, keys: list[str] | tuple[str, ...]) -> list[str]:
        """Return the subset of ``keys`` that are absent or empty."""
        return [k for k in keys if not self._values.get(k)]

    def is_secret(self, key: str) -> bool:
        return key in self._secrets

    def render(self, template: str) -> str:
        """Substitute ``{KEY}`` placeholders with required values.

        ``{{`` and ``}}`` produce literal braces.
        """
        out: list[str] = []
        for literal, field, _spec, _conv in string.Formatter().parse(template):
            out.append(literal)
            if field is not None:
                out.append(self.require(field))
        return "".join(out)

    def redact(self, text: str) -> str:
        """Replace every secret value occurring in ``text``."""
        for key in self._secrets:
            value = self._values.get(key, "")
            if len(value) >= _MIN_SCRUB_LEN:
                text = text.replace(value, _REDACTED)
        return text

    def snapshot(self) -> dict[str, str]:
        """Copy of all values with secrets redacted (for persistence)."""
        return {
            k: (_REDACTED if k in self._secrets else v)
            for k, v in self._values.items()
        }
