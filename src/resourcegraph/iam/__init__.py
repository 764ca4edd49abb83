"""
IAM (Identity and Access Management) module.
"""

from __future__ import annotations

from .guard import check_scope

__all__ = [
    "check_scope",
]
