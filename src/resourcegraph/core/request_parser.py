"""
Request parser for resource paths and bracketed query strings.

Query-string formats:

1. Filters:
   filter[status]=active
   filter[price][operator]=>&filter[price][value]=100

2. Sorting:
   sort[created_at]=desc
   sort=-created_at,name

3. Includes / projection:
   include=author,comments    include[]=author
   fields=id,name             fields[]=name

4. Pagination:
   page=2&per_page=25         limit=50
"""

from __future__ import annotations


from dataclasses import dataclass
from typing import Any, Iterable, Optional
from urllib.parse import parse_qsl, urlsplit


# Deepest accepted key, e.g. filter[id][value][]
MAX_KEY_DEPTH = 4


@dataclass
class ResourceRoute:
    """Resolved target of a resource path: /{prefix}/{resource}[/{identifier}]."""
    resource: Optional[str]
    identifier: Optional[str] = None
    extra_segments: int = 0

    @property
    def is_item(self) -> bool:
        return self.identifier is not None


def split_key(key: str) -> list[str]:
    """
    Split a bracketed key into path tokens.

    "filter[price][operator]" -> ["filter", "price", "operator"]
    "include[]" -> ["include", ""]
    """
    if "[" not in key or not key.endswith("]"):
        return [key]

    head, _, rest = key.partition("[")
    tokens = [head]
    for part in rest[:-1].split("]["):
        tokens.append(part)
    return tokens


def _assign(target: dict[str, Any], tokens: list[str], value: str) -> None:
    """Insert value into the nested structure described by tokens."""
    node: Any = target
    for i, token in enumerate(tokens):
        last = i == len(tokens) - 1
        next_is_append = not last and tokens[i + 1] == ""

        if last:
            if token == "":
                if isinstance(node, list):
                    node.append(value)
                return
            if isinstance(node, dict):
                existing = node.get(token)
                if existing is None:
                    node[token] = value
                elif isinstance(existing, list):
                    existing.append(value)
                elif isinstance(existing, str):
                    node[token] = [existing, value]
            return

        if token == "" or not isinstance(node, dict):
            # Nested structures below an append marker are not supported
            return

        child = node.get(token)
        if child is None:
            child = [] if next_is_append else {}
            node[token] = child
        elif next_is_append and isinstance(child, str):
            child = [child]
            node[token] = child
        elif not next_is_append and not isinstance(child, dict):
            return
        node = child


def parse_sort_string(value: str) -> dict[str, str]:
    """
    Convert "-created_at,name" into {"created_at": "desc", "name": "asc"}.
    """
    result: dict[str, str] = {}
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        if part.startswith("-"):
            result[part[1:]] = "desc"
        else:
            result[part.lstrip("+")] = "asc"
    return result


def parse_query_params(items: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """
    Build the raw parameter structure from (key, value) pairs.

    Repeated plain keys collect into lists; bracketed keys nest.
    """
    params: dict[str, Any] = {}
    for key, value in items:
        tokens = split_key(key)
        if len(tokens) > MAX_KEY_DEPTH:
            continue
        _assign(params, tokens, value)

    if isinstance(params.get("sort"), str):
        params["sort"] = parse_sort_string(params["sort"])

    return params


def parse_query_string(query_string: str) -> dict[str, Any]:
    """Parse a raw query string (without the leading '?')."""
    return parse_query_params(parse_qsl(query_string, keep_blank_values=False))


def split_path(path: str) -> tuple[list[str], str]:
    """
    Split a request path into segments and query string.

    "/api/products/5?fields=name" -> (["api", "products", "5"], "fields=name")
    """
    parts = urlsplit(path)
    segments = [segment for segment in parts.path.strip("/").split("/") if segment]
    return segments, parts.query


def resolve_route(segments: list[str], prefix: str) -> ResourceRoute:
    """
    Resolve path segments against the route prefix.

    With prefix "api": ["api", "products", "5"] -> ResourceRoute("products", "5").
    A path outside the prefix resolves to ResourceRoute(None).
    """
    prefix_segments = [s for s in prefix.strip("/").split("/") if s]
    if segments[:len(prefix_segments)] != prefix_segments:
        return ResourceRoute(resource=None)

    rest = segments[len(prefix_segments):]
    if not rest:
        return ResourceRoute(resource=None)

    return ResourceRoute(
        resource=rest[0],
        identifier=rest[1] if len(rest) > 1 else None,
        extra_segments=max(len(rest) - 2, 0),
    )
