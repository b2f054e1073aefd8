"""Adapters — tool bindings for external commands.

Public re-exports for convenient access.
"""

from wahaprov.adapters.base import Adapter, ExecutionContext
from wahaprov.adapters.mock import MockAdapter
from wahaprov.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
