"""
API module - FastAPI endpoints.
"""

from __future__ import annotations

from .router import create_resource_router, default_principal_resolver

__all__ = [
    "create_resource_router",
    "default_principal_resolver",
]
