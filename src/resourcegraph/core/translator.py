"""
Query translator.

Turns raw request parameters into a BoundedQuery constrained by a resource's
CapabilityDescriptor. Every caller-supplied name is checked against the
descriptor's whitelists; names that fail are dropped (or rejected in strict
mode) and recorded on the query.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from .defs import CapabilityDescriptor
from .errors import ValidationError
from .query_types import BoundedQuery, FilterPredicate, RejectedParam, SortOrder
from .utils import split_csv

logger = logging.getLogger(__name__)


# Accepted operator spellings -> normalized op
OPERATORS = {
    "=": "eq",
    "eq": "eq",
    "!=": "ne",
    "ne": "ne",
    "<": "lt",
    "lt": "lt",
    ">": "gt",
    "gt": "gt",
    "<=": "lte",
    "lte": "lte",
    ">=": "gte",
    "gte": "gte",
    "like": "like",
    "in": "in",
    "not_in": "not_in",
    "between": "between",
    "not_between": "not_between",
}

LIST_OPS = {"in", "not_in"}
RANGE_OPS = {"between", "not_between"}

_SCALAR_TYPES = (str, int, float, bool)


class QueryTranslator:
    """
    Translates raw request parameters against a capability descriptor.

    Usage:
        translator = QueryTranslator(max_per_page=100)
        query = translator.translate(descriptor, {
            "filter": {"price": {"operator": ">", "value": 100}},
            "sort": {"created_at": "desc"},
        })
    """

    def __init__(self, max_per_page: int = 100, strict: bool = False):
        """
        Args:
            max_per_page: Upper bound for `per_page` and `limit`
            strict: Raise ValidationError instead of dropping rejected params
        """
        self.max_per_page = max_per_page
        self.strict = strict

    def translate(self, descriptor: CapabilityDescriptor, raw_params: Mapping[str, Any]) -> BoundedQuery:
        """
        Build a BoundedQuery from raw params.

        Raises:
            ValidationError: only in strict mode, when anything was rejected
        """
        rejected: list[RejectedParam] = []
        raw_params = raw_params or {}

        filters = self._translate_filters(raw_params.get("filter"), descriptor, rejected)
        sort = self._translate_sort(raw_params.get("sort"), descriptor, rejected)
        include = self._translate_include(raw_params.get("include"), descriptor, rejected)
        fields = self._translate_fields(raw_params.get("fields"), descriptor, rejected)

        page = self._positive_int(raw_params, "page", rejected)
        per_page = self._positive_int(raw_params, "per_page", rejected, clamp=True)
        limit = self._positive_int(raw_params, "limit", rejected, clamp=True)

        if rejected:
            logger.debug(
                f"{descriptor.resource_name}: dropped params "
                f"{[(r.kind, r.name) for r in rejected]}"
            )
            if self.strict:
                raise ValidationError(
                    {f"{r.kind}.{r.name}": [r.reason] for r in rejected},
                    message=rejected[0].reason,
                )

        return BoundedQuery(
            resource=descriptor.resource_name,
            filters=filters,
            sort=sort,
            include=include,
            fields=fields,
            page=page,
            per_page=per_page,
            limit=limit,
            rejected=rejected,
        )

    # --- filters ---

    def _translate_filters(
        self,
        raw_filters: Any,
        descriptor: CapabilityDescriptor,
        rejected: list[RejectedParam],
    ) -> list[FilterPredicate]:
        """
        Input: {"price": {"operator": ">", "value": 100}, "status": "active"}
        Output: [FilterPredicate(price gt 100), FilterPredicate(status eq "active")]
        """
        if raw_filters is None:
            return []
        if not isinstance(raw_filters, Mapping):
            rejected.append(RejectedParam(kind="filter", name="filter", reason="filter must be an object"))
            return []

        predicates: list[FilterPredicate] = []
        for name, value in raw_filters.items():
            if not isinstance(name, str) or name not in descriptor.filterable_fields:
                rejected.append(RejectedParam(
                    kind="filter", name=str(name), reason=f"field '{name}' is not filterable",
                ))
                continue

            predicate = self._build_predicate(name, value, rejected)
            if predicate is not None:
                predicates.append(predicate)

        return sorted(predicates, key=lambda p: p.field)

    def _build_predicate(
        self, field: str, value: Any, rejected: list[RejectedParam]
    ) -> Optional[FilterPredicate]:
        # Scalar (or null) means equality
        if value is None or isinstance(value, _SCALAR_TYPES):
            return FilterPredicate(field=field, op="eq", value=value)

        if not isinstance(value, Mapping) or "operator" not in value or "value" not in value:
            rejected.append(RejectedParam(
                kind="filter", name=field, reason=f"filter '{field}' must be a scalar or an operator/value pair",
            ))
            return None

        raw_op = value["operator"]
        op = OPERATORS.get(raw_op.strip().lower()) if isinstance(raw_op, str) else None
        if op is None:
            rejected.append(RejectedParam(
                kind="operator", name=field, reason=f"operator '{raw_op}' not supported",
            ))
            return None

        operand = value["value"]

        if op in LIST_OPS:
            if isinstance(operand, Mapping):
                rejected.append(RejectedParam(kind="operator", name=field, reason=f"'{op}' expects a list"))
                return None
            return FilterPredicate(field=field, op=op, value=split_csv(operand))

        if op in RANGE_OPS:
            bounds = split_csv(operand) if not isinstance(operand, Mapping) else []
            if len(bounds) != 2:
                rejected.append(RejectedParam(
                    kind="operator", name=field, reason=f"'{op}' expects exactly two bounds",
                ))
                return None
            return FilterPredicate(field=field, op=op, value=bounds)

        if operand is not None and not isinstance(operand, _SCALAR_TYPES):
            rejected.append(RejectedParam(kind="operator", name=field, reason=f"'{op}' expects a scalar"))
            return None

        if op == "like":
            operand = "" if operand is None else str(operand)

        return FilterPredicate(field=field, op=op, value=operand)

    # --- sort / include / fields ---

    def _translate_sort(
        self,
        raw_sort: Any,
        descriptor: CapabilityDescriptor,
        rejected: list[RejectedParam],
    ) -> list[SortOrder]:
        """
        Input: {"created_at": "DESC", "name": "asc"}
        Output: [SortOrder(created_at desc), SortOrder(name asc)]
        """
        if raw_sort is None:
            return []
        if not isinstance(raw_sort, Mapping):
            rejected.append(RejectedParam(kind="sort", name="sort", reason="sort must be an object"))
            return []

        order: list[SortOrder] = []
        for name, direction in raw_sort.items():
            if not isinstance(name, str) or name not in descriptor.sortable_fields:
                rejected.append(RejectedParam(
                    kind="sort", name=str(name), reason=f"field '{name}' is not sortable",
                ))
                continue
            if any(o.field == name for o in order):
                continue
            is_desc = isinstance(direction, str) and direction.strip().lower() == "desc"
            order.append(SortOrder(field=name, dir="desc" if is_desc else "asc"))

        return order

    def _translate_include(
        self,
        raw_include: Any,
        descriptor: CapabilityDescriptor,
        rejected: list[RejectedParam],
    ) -> list[str]:
        valid: set[str] = set()
        for name in split_csv(raw_include):
            if isinstance(name, str) and name in descriptor.includable_relations:
                valid.add(name)
            else:
                rejected.append(RejectedParam(
                    kind="include", name=str(name), reason=f"relation '{name}' is not includable",
                ))
        return sorted(valid)

    def _translate_fields(
        self,
        raw_fields: Any,
        descriptor: CapabilityDescriptor,
        rejected: list[RejectedParam],
    ) -> list[str]:
        requested: set[str] = set()
        for name in split_csv(raw_fields):
            if isinstance(name, str) and name in descriptor.exposed_fields:
                requested.add(name)
            else:
                rejected.append(RejectedParam(
                    kind="fields", name=str(name), reason=f"field '{name}' is not exposed",
                ))

        if not requested:
            return []

        # Primary key always travels with a projection
        projection = [descriptor.primary_key]
        projection.extend(f for f in descriptor.exposed_fields if f in requested and f != descriptor.primary_key)
        return projection

    # --- pagination ---

    def _positive_int(
        self,
        raw_params: Mapping[str, Any],
        key: str,
        rejected: list[RejectedParam],
        clamp: bool = False,
    ) -> Optional[int]:
        raw = raw_params.get(key)
        if raw is None or raw == "":
            return None

        value: Optional[int] = None
        if isinstance(raw, int) and not isinstance(raw, bool):
            value = raw
        elif isinstance(raw, str) and raw.strip().isdigit():
            value = int(raw.strip())

        if value is None or value < 1:
            rejected.append(RejectedParam(
                kind="pagination", name=key, reason=f"'{key}' must be a positive integer",
            ))
            return None

        if clamp:
            value = min(value, self.max_per_page)
        return value
