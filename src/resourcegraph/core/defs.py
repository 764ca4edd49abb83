"""
Core dataclass definitions for resourcegraph.

A CapabilityDescriptor is the static whitelist + permission map of one
exposed entity type. It is built once at registration and never mutated.
"""

from __future__ import annotations


from dataclasses import dataclass, field
from typing import Any, Literal, Optional


OperationKind = Literal["list", "read", "create", "update", "delete"]

OPERATION_KINDS: tuple[str, ...] = ("list", "read", "create", "update", "delete")
MUTATING_KINDS: frozenset[str] = frozenset({"create", "update", "delete"})

DEFAULT_SCOPES: dict[str, str] = {
    "list": "read",
    "read": "read",
    "create": "create",
    "update": "update",
    "delete": "delete",
}


@dataclass(frozen=True)
class CapabilityDescriptor:
    """Whitelists and scopes for one resource."""
    resource_name: str
    exposed_fields: tuple[str, ...]
    filterable_fields: tuple[str, ...] = ()
    sortable_fields: tuple[str, ...] = ()
    includable_relations: tuple[str, ...] = ()
    scopes_by_operation: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_SCOPES))
    primary_key: str = "id"
    timestamp_fields: tuple[str, ...] = ()
    index_names: dict[str, str] = field(default_factory=dict)  # field -> index name
    writable_fields: tuple[str, ...] = ()
    required_fields: tuple[str, ...] = ()

    def scope_for(self, operation: str) -> Optional[str]:
        """Scope required for an operation kind, or None when unrestricted."""
        return self.scopes_by_operation.get(operation)

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource": self.resource_name,
            "primary_key": self.primary_key,
            "fields": list(self.exposed_fields),
            "filters": list(self.filterable_fields),
            "sorts": list(self.sortable_fields),
            "relations": list(self.includable_relations),
            "scopes": dict(self.scopes_by_operation),
            "writable": list(self.writable_fields),
            "required": list(self.required_fields),
        }
