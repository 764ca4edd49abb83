"""
Core module - descriptors, query types, translation and optimization.
"""

from __future__ import annotations

from .defs import (
    DEFAULT_SCOPES,
    MUTATING_KINDS,
    OPERATION_KINDS,
    CapabilityDescriptor,
    OperationKind,
)
from .errors import (
    CacheBackendError,
    GraphConfigError,
    IAMError,
    NotFoundError,
    ResourceGraphError,
    StoreFault,
    TransactionAborted,
    ValidationError,
)
from .query_types import (
    BatchOperation,
    BatchOperationDescriptor,
    BatchOutcome,
    BatchRequest,
    BatchResult,
    BoundedQuery,
    FilterPredicate,
    PageMeta,
    RejectedParam,
    SortOrder,
)
from .optimizer import QueryOptimizer
from .registry import RESERVED_NAMES, ResourceBinding, ResourceRegistry
from .request_parser import (
    ResourceRoute,
    parse_query_params,
    parse_query_string,
    resolve_route,
    split_path,
)
from .translator import OPERATORS, QueryTranslator
from .utils import (
    canonical_json,
    pluralize,
    resource_name_for,
    split_csv,
    to_kebab_case,
    to_snake_case,
)

__all__ = [
    # Definitions
    "CapabilityDescriptor",
    "OperationKind",
    "OPERATION_KINDS",
    "MUTATING_KINDS",
    "DEFAULT_SCOPES",
    # Errors
    "ResourceGraphError",
    "ValidationError",
    "NotFoundError",
    "IAMError",
    "GraphConfigError",
    "StoreFault",
    "CacheBackendError",
    "TransactionAborted",
    # Query types
    "FilterPredicate",
    "SortOrder",
    "RejectedParam",
    "BoundedQuery",
    "PageMeta",
    "BatchOperation",
    "BatchRequest",
    "BatchOperationDescriptor",
    "BatchResult",
    "BatchOutcome",
    # Translation
    "QueryTranslator",
    "QueryOptimizer",
    "OPERATORS",
    # Registry
    "ResourceRegistry",
    "ResourceBinding",
    "RESERVED_NAMES",
    # Request parsing
    "ResourceRoute",
    "parse_query_params",
    "parse_query_string",
    "resolve_route",
    "split_path",
    # Utils
    "canonical_json",
    "pluralize",
    "resource_name_for",
    "split_csv",
    "to_kebab_case",
    "to_snake_case",
]
