"""Adapters — tool bindings for external integrations.

Public re-exports for convenient access.
"""

from tagwatch.adapters.base import Adapter, ExecutionContext, OperationAdapter
from tagwatch.adapters.mock import MockAdapter
from tagwatch.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
    "OperationAdapter",
]
