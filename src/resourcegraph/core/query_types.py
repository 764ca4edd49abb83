"""
Pydantic models for translated queries and batch payloads.

These define the normalized internal representation produced by the
translator and the wire shapes of the batch endpoint.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


# --- Normalized query types ---

class FilterPredicate(BaseModel):
    """
    Normalized filter representation.

    Input: {"price": {"operator": ">", "value": 100}}
    Normalized: FilterPredicate(field="price", op="gt", value=100)
    """
    field: str
    op: str  # eq, ne, lt, gt, lte, gte, like, in, not_in, between, not_between
    value: Any


class SortOrder(BaseModel):
    """
    Normalized sort representation.

    Input: {"created_at": "DESC"}
    Normalized: SortOrder(field="created_at", dir="desc")
    """
    field: str
    dir: Literal["asc", "desc"]


class RejectedParam(BaseModel):
    """A caller-supplied name or predicate that did not survive translation."""
    kind: Literal["filter", "operator", "sort", "include", "fields", "pagination"]
    name: str
    reason: str


class BoundedQuery(BaseModel):
    """
    Whitelist-constrained query for one request. Never persisted.

    An empty `fields` list means every exposed field.
    """
    resource: str
    filters: list[FilterPredicate] = Field(default_factory=list)
    sort: list[SortOrder] = Field(default_factory=list)
    include: list[str] = Field(default_factory=list)
    fields: list[str] = Field(default_factory=list)
    page: Optional[int] = None
    per_page: Optional[int] = None
    limit: Optional[int] = None
    index_hints: list[str] = Field(default_factory=list)
    rejected: list[RejectedParam] = Field(default_factory=list)

    @property
    def has_pagination(self) -> bool:
        return self.per_page is not None

    def referenced_fields(self) -> list[str]:
        """Fields used by filter and sort predicates, in first-seen order."""
        seen: list[str] = []
        for name in [f.field for f in self.filters] + [s.field for s in self.sort]:
            if name not in seen:
                seen.append(name)
        return seen


class PageMeta(BaseModel):
    """Pagination metadata of a list response."""
    current_page: int
    per_page: int
    total: int
    last_page: int
    from_: Optional[int] = Field(default=None, alias="from")
    to: Optional[int] = None

    model_config = {"populate_by_name": True}


# --- Batch types ---

BatchMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE"]


class BatchOperation(BaseModel):
    """One entry of the batch payload's `operations` list."""
    method: BatchMethod
    path: str
    body: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = Field(default_factory=dict)

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class BatchRequest(BaseModel):
    """
    Batch endpoint payload.

    POST /api/batch
    {"operations": [{"method": "POST", "path": "/api/products", "body": {...}}],
     "use_transaction": true}
    """
    operations: List[BatchOperation] = Field(min_length=1)
    use_transaction: bool = False


class BatchOperationDescriptor(BaseModel):
    """A batch operation with its fixed position in the result list."""
    sequence_index: int
    method: BatchMethod
    path: str
    body: Dict[str, Any] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_operations(cls, operations: list[BatchOperation]) -> list[BatchOperationDescriptor]:
        return [
            cls(
                sequence_index=index,
                method=op.method,
                path=op.path,
                body=op.body or {},
                headers=op.headers,
            )
            for index, op in enumerate(operations)
        ]


class BatchResult(BaseModel):
    """Result of one batch operation. Never cached."""
    id: int
    status_code: int
    body: Any = None


class BatchOutcome(BaseModel):
    """Aggregated outcome of a batch execution."""
    results: list[BatchResult] = Field(default_factory=list)
    success: bool = True
    rolled_back: bool = False
    error: Optional[str] = None
    message: Optional[str] = None
    status_code: int = 200

    def to_response(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"results": [r.model_dump() for r in self.results]}
        if self.error:
            payload["error"] = self.error
            payload["message"] = self.message
        return payload
