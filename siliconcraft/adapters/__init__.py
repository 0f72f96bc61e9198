"""Adapters — tool bindings for external commands.

Public re-exports for convenient access.
"""

from siliconcraft.adapters.base import Adapter, ExecutionContext
from siliconcraft.adapters.mock import MockAdapter
from siliconcraft.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
