"""
Query optimizer.

Best-effort post-processing of a BoundedQuery before it reaches the store:
column pruning, a row cap for unbounded sorts and index hints.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .defs import CapabilityDescriptor
from .query_types import BoundedQuery

logger = logging.getLogger(__name__)


class QueryOptimizer:
    """
    Optimizes translated queries. Never raises.

    Usage:
        optimizer = QueryOptimizer(default_sort_limit=1000)
        query = optimizer.optimize(query, raw_params, descriptor)
    """

    def __init__(self, default_sort_limit: int = 1000, prune_columns: bool = True):
        self.default_sort_limit = default_sort_limit
        self.prune_columns = prune_columns

    def optimize(
        self,
        query: BoundedQuery,
        raw_params: Mapping[str, Any],
        descriptor: CapabilityDescriptor,
    ) -> BoundedQuery:
        """Return an optimized copy of `query`."""
        optimized = query.model_copy(deep=True)
        raw_params = raw_params or {}

        try:
            self._optimize_selects(optimized, raw_params, descriptor)
            self._optimize_sorting(optimized)
            self._apply_index_hints(optimized, descriptor)
        except Exception as e:
            logger.warning(f"Query optimization skipped for {query.resource}: {e}")
            return query

        return optimized

    def _optimize_selects(
        self,
        query: BoundedQuery,
        raw_params: Mapping[str, Any],
        descriptor: CapabilityDescriptor,
    ) -> None:
        """Project onto the essential columns when no projection was requested."""
        if not self.prune_columns:
            return

        # An explicit projection request is left alone, even if nothing survived it
        if raw_params.get("fields"):
            return

        essential = [descriptor.primary_key]
        essential.extend(descriptor.timestamp_fields)
        essential.extend(query.referenced_fields())
        essential = [
            name for name in dict.fromkeys(essential)
            if name == descriptor.primary_key or name in descriptor.exposed_fields
        ]

        if len(essential) < len(descriptor.exposed_fields):
            query.fields = essential

    def _optimize_sorting(self, query: BoundedQuery) -> None:
        """Cap sorted queries that have no pagination and no limit."""
        if not query.sort or query.has_pagination or query.limit is not None:
            return

        query.limit = self.default_sort_limit
        logger.debug(f"{query.resource}: unbounded sort capped at {self.default_sort_limit} rows")

    def _apply_index_hints(self, query: BoundedQuery, descriptor: CapabilityDescriptor) -> None:
        """Advise indexes that cover filtered fields."""
        if not query.filters or not descriptor.index_names:
            return

        hints = {
            descriptor.index_names[f.field]
            for f in query.filters
            if f.field in descriptor.index_names
        }
        query.index_hints = sorted(hints)
