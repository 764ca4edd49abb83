"""
Utility functions for resourcegraph.

Includes:
- Case conversion and resource naming (PascalCase -> plural kebab-case)
- Canonical JSON used for cache keys
- Loose list coercion for query-string values
"""

from __future__ import annotations

import json
import re
from typing import Any


# =============================================================================
# Case conversion utilities
# =============================================================================

_CAMEL_TO_SNAKE_PATTERN = re.compile(r'(?<!^)(?=[A-Z])')


def to_snake_case(name: str) -> str:
    """
    Convert camelCase / PascalCase to snake_case.

    Examples:
        ownedProperties -> owned_properties
        HTTPResponse -> http_response
    """
    # Handle consecutive uppercase (HTTP -> http)
    result = re.sub(r'([A-Z]+)([A-Z][a-z])', r'\1_\2', name)
    result = _CAMEL_TO_SNAKE_PATTERN.sub('_', result)
    return result.lower()


def to_kebab_case(name: str) -> str:
    """
    Convert PascalCase to kebab-case.

    Examples:
        OrderItem -> order-item
        APIKey -> api-key
    """
    return to_snake_case(name).replace("_", "-")


def pluralize(word: str) -> str:
    """
    Naive English plural for resource names.

    Examples:
        product -> products
        category -> categories
        box -> boxes
        order-item -> order-items
    """
    if not word:
        return word
    if word.endswith("y") and len(word) > 1 and word[-2] not in "aeiou":
        return word[:-1] + "ies"
    if word.endswith(("s", "x", "z", "ch", "sh")):
        return word + "es"
    return word + "s"


def resource_name_for(class_name: str) -> str:
    """Default resource name: plural kebab form of the type name (OrderItem -> order-items)."""
    return pluralize(to_kebab_case(class_name))


# =============================================================================
# Serialization helpers
# =============================================================================


def canonical_json(data: Any) -> str:
    """Stable JSON: sorted keys, no whitespace. Non-JSON values fall back to str()."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def split_csv(value: Any) -> list[Any]:
    """
    Coerce a loose value into a list.

    "a,b" -> ["a", "b"]; ["a"] -> ["a"]; 5 -> [5]; None -> []
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]
