"""
resourcegraph CLI - serve, inspect and maintain a resource API.
"""

from __future__ import annotations

from .main import app, main

__all__ = ["main", "app"]
