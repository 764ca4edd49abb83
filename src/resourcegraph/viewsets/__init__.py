"""
ViewSets - DRF-style capability declaration for exposed models.

Models stay pure ORM. All exposure configuration lives in viewsets.
"""

from __future__ import annotations

from .base import (
    ModelViewSet,
    discover_index_names,
    get_column_type,
    get_column_types,
)

__all__ = [
    "ModelViewSet",
    "discover_index_names",
    "get_column_type",
    "get_column_types",
]
