"""
ConfigPatch — a declared set of edits to one configuration file.

Patches are declared by pipeline builders and applied by the
EnvPatcher.  Values may contain ``{KEY}`` placeholders that are
resolved against the pipeline context at apply time, so a patch can
reference values produced by earlier steps (e.g. the transaction hash).
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class ConfigPatch(BaseModel):
    """Edits for a single file, applied atomically.

    Attributes:
        target:   File to patch (templated).
        template: Optional file copied over ``target`` first (templated).
        style:    ``env`` for ``KEY=value`` lines, ``toml`` for
                  ``field = "value"`` lines.
        assign:   Ordered (key, value) substitutions.
        delete:   Keys whose lines are removed.
        replace:  Ordered (old, new) literal text replacements.
    """

    target: str
    template: str | None = None
    style: Literal["env", "toml"] = "env"
    assign: list[tuple[str, str]] = Field(default_factory=list)
    delete: list[str] = Field(default_factory=list)
    replace: list[tuple[str, str]] = Field(default_factory=list)

    @property
    def keys(self) -> list[str]:
        return [k for k, _ in self.assign]
