"""
Execution context for request processing.

A request reaching the dispatcher, whether it arrived over HTTP or as a
batch sub-operation, is an InternalRequest carrying the caller's Principal.
"""

from __future__ import annotations


from dataclasses import dataclass, field
from typing import Any, Optional


# Scope that grants every operation
WILDCARD_SCOPE = "*"


@dataclass
class Principal:
    """
    Represents the authenticated user/service making the request.

    Used by IAM for access control decisions.
    """
    id: Optional[int | str] = None
    scopes: list[str] = field(default_factory=list)
    bearer_token: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def anonymous(cls) -> Principal:
        return cls()

    @property
    def is_anonymous(self) -> bool:
        return self.id is None and self.bearer_token is None

    def has_scope(self, scope: str) -> bool:
        return WILDCARD_SCOPE in self.scopes or scope in self.scopes


@dataclass
class InternalRequest:
    """
    A resource request in transport-neutral form.

    path is the full request path including the route prefix,
    e.g. "/api/products/5". params is the parsed query structure.
    """
    method: str
    path: str
    params: dict[str, Any] = field(default_factory=dict)
    body: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    principal: Optional[Principal] = None

    def __post_init__(self):
        self.method = self.method.upper()
