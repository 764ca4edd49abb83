"""
Runtime module - request execution pipeline.
"""

from __future__ import annotations

from .batch_executor import BatchExecutor
from .context import InternalRequest, Principal
from .dispatcher import DispatchResult, RequestDispatcher
from .resources import ResourceService
from .store import ResourceStore

__all__ = [
    "Principal",
    "InternalRequest",
    "ResourceStore",
    "ResourceService",
    "RequestDispatcher",
    "DispatchResult",
    "BatchExecutor",
]
