"""
Service utilities - app factory and database handle.
"""

from __future__ import annotations

from .app import HealthcheckLogFilter, create_service_app
from .database import Base, Database

__all__ = [
    "create_service_app",
    "HealthcheckLogFilter",
    "Base",
    "Database",
]
