"""Adapters — bindings for the external tools the pipeline drives.

Public re-exports for convenient access.
"""

from pvemirror.adapters.base import Adapter, ExecutionContext
from pvemirror.adapters.mock import MockAdapter
from pvemirror.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
