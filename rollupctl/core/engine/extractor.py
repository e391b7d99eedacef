"""
Output extractor — pull a value out of captured tool output.

Deployment tools print the value we need (a transaction hash) somewhere
in free-form output.  The first match by position wins; no match is a
hard failure because downstream configuration depends on the value.
"""

from __future__ import annotations

import re

from rollupctl.core.errors import ExtractionFailure

# A 0x-prefixed 32-byte hex token, not part of a longer hex run
# (so 65-byte signatures and the like are never truncated into a match).
TX_HASH_PATTERN = r"(?<![0-9a-fA-F])0x[0-9a-fA-F]{64}(?![0-9a-fA-F])"

# A 0x-prefixed 20-byte address.
ADDRESS_PATTERN = r"(?<![0-9a-fA-F])0x[0-9a-fA-F]{40}(?![0-9a-fA-F])"


def extract(text: str, pattern: str = TX_HASH_PATTERN) -> str:
    """Return the first match of ``pattern`` in ``text``.

    If the pattern has a capture group, the first group is returned
    instead of the whole match.

    Raises:
        ExtractionFailure: If nothing matches.
    """
    match = re.search(pattern, text)
    if match is None:
        raise ExtractionFailure(reason="pattern not found")
    return match.group(1) if match.re.groups else match.group(0)


def extract_all(text: str, pattern: str = TX_HASH_PATTERN) -> list[str]:
    """Return every match of ``pattern`` in order of appearance."""
    regex = re.compile(pattern)
    if regex.groups:
        return [m.group(1) for m in regex.finditer(text)]
    return [m.group(0) for m in regex.finditer(text)]
