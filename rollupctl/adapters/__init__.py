"""Adapters — tool bindings for external commands.

Public re-exports for convenient access.
"""

from rollupctl.adapters.base import Adapter, ExecutionContext
from rollupctl.adapters.mock import MockAdapter
from rollupctl.adapters.registry import AdapterRegistry
from rollupctl.adapters.shell.command import CommandAdapter

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "CommandAdapter",
    "ExecutionContext",
    "MockAdapter",
]
