"""
resourcegraph - capability-bounded REST resources over SQLAlchemy models.

Exposes models declared through viewsets as a JSON API with:
- Whitelisted filtering, sorting, includes and projection
- Query optimization (column pruning, sort row cap, index hints)
- Redis response cache with write invalidation
- Batch endpoint with optional all-or-nothing transactions

Usage:
    from resourcegraph import ModelViewSet, ResourceGraph, Settings

    class ProductViewSet(ModelViewSet):
        model = Product

    graph = ResourceGraph([ProductViewSet], Settings())
    app = graph.app
"""

from __future__ import annotations

__version__ = "1.0.0"

from .cache import RedisClient, ResponseCache, derive_cache_key
from .config import Settings, load_settings
from .core import (
    BatchOperation,
    BatchOutcome,
    BatchRequest,
    BatchResult,
    BoundedQuery,
    CacheBackendError,
    CapabilityDescriptor,
    FilterPredicate,
    GraphConfigError,
    IAMError,
    NotFoundError,
    QueryOptimizer,
    QueryTranslator,
    RejectedParam,
    ResourceGraphError,
    ResourceRegistry,
    SortOrder,
    StoreFault,
    ValidationError,
)
from .engine import ResourceGraph
from .runtime import (
    BatchExecutor,
    InternalRequest,
    Principal,
    RequestDispatcher,
    ResourceService,
    ResourceStore,
)
from .service import Base, Database
from .viewsets import ModelViewSet

__all__ = [
    "__version__",
    # Engine
    "ResourceGraph",
    "Settings",
    "load_settings",
    "ModelViewSet",
    "Base",
    "Database",
    # Core
    "CapabilityDescriptor",
    "ResourceRegistry",
    "QueryTranslator",
    "QueryOptimizer",
    "BoundedQuery",
    "FilterPredicate",
    "SortOrder",
    "RejectedParam",
    # Batches
    "BatchOperation",
    "BatchRequest",
    "BatchResult",
    "BatchOutcome",
    "BatchExecutor",
    # Runtime
    "Principal",
    "InternalRequest",
    "ResourceStore",
    "ResourceService",
    "RequestDispatcher",
    # Cache
    "RedisClient",
    "ResponseCache",
    "derive_cache_key",
    # Errors
    "ResourceGraphError",
    "ValidationError",
    "NotFoundError",
    "IAMError",
    "GraphConfigError",
    "StoreFault",
    "CacheBackendError",
]
