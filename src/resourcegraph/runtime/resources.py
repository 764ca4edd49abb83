"""
ResourceService - read/write contract for registered resources.

Reads go translator -> optimizer -> store, through the response cache.
Writes validate the body against the descriptor, hit the store and
invalidate the cache (unless the caller takes over invalidation).
"""

from __future__ import annotations

import logging
import math
from typing import Any, Optional

from ..cache.response_cache import ResponseCache
from ..core.errors import NotFoundError, ValidationError
from ..core.optimizer import QueryOptimizer
from ..core.query_types import BoundedQuery, PageMeta
from ..core.registry import ResourceBinding, ResourceRegistry
from ..core.translator import QueryTranslator
from .store import ResourceStore

logger = logging.getLogger(__name__)


class ResourceService:
    """
    Implements list/read/create/update/delete over a ResourceStore.

    Usage:
        service = ResourceService(registry, translator, optimizer, cache)
        page = await service.list("products", {"filter": {"price": 5}}, store)
        item = await service.read("products", 5, {}, store)
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        translator: QueryTranslator,
        optimizer: QueryOptimizer,
        cache: ResponseCache,
        default_per_page: int = 15,
    ):
        self.registry = registry
        self.translator = translator
        self.optimizer = optimizer
        self.cache = cache
        self.default_per_page = default_per_page

    def prepare(self, binding: ResourceBinding, params: dict[str, Any]) -> BoundedQuery:
        """Translate and optimize request params for one resource."""
        query = self.translator.translate(binding.descriptor, params)
        return self.optimizer.optimize(query, params, binding.descriptor)

    # === Reads ===

    async def list(
        self,
        resource: str,
        params: dict[str, Any],
        store: ResourceStore,
        *,
        use_cache: bool = True,
    ) -> dict[str, Any]:
        """One page of items: {"items": [...], "page_meta": {...}}."""
        binding = self.registry.get(resource)

        async def compute() -> dict[str, Any]:
            query = self.prepare(binding, params)
            page = query.page or 1
            per_page = query.per_page or min(self.default_per_page, self.translator.max_per_page)
            items, total = await store.fetch_page(binding, query, page, per_page)
            meta = self._page_meta(page, per_page, total, len(items))
            return {"items": items, "page_meta": meta.model_dump(by_alias=True)}

        if not use_cache:
            return await compute()
        return await self.cache.remember(resource, "list", params, compute)

    async def read(
        self,
        resource: str,
        identifier: Any,
        params: dict[str, Any],
        store: ResourceStore,
        *,
        use_cache: bool = True,
    ) -> dict[str, Any]:
        """
        One item by identifier.

        Raises:
            NotFoundError: no item with that identifier
        """
        binding = self.registry.get(resource)

        async def compute() -> dict[str, Any]:
            query = self.prepare(binding, params)
            item = await store.fetch_one(binding, identifier, query)
            if item is None:
                raise NotFoundError(resource, identifier)
            return item

        if not use_cache:
            return await compute()
        return await self.cache.remember(resource, "read", {**params, "id": identifier}, compute)

    # === Writes ===

    async def create(
        self,
        resource: str,
        body: dict[str, Any],
        store: ResourceStore,
        *,
        invalidate: bool = True,
    ) -> dict[str, Any]:
        binding = self.registry.get(resource)
        data = self.validate_body(binding, body, partial=False)

        item = await store.insert(binding, data)
        logger.info(f"Created {resource}/{item.get(binding.descriptor.primary_key)}")

        if invalidate:
            await self.cache.flush_collection(resource)
        return item

    async def update(
        self,
        resource: str,
        identifier: Any,
        body: dict[str, Any],
        store: ResourceStore,
        *,
        invalidate: bool = True,
    ) -> dict[str, Any]:
        binding = self.registry.get(resource)
        data = self.validate_body(binding, body, partial=True)

        item = await store.update(binding, identifier, data)
        if item is None:
            raise NotFoundError(resource, identifier)
        logger.info(f"Updated {resource}/{identifier}")

        if invalidate:
            await self.cache.flush(resource, identifier)
        return item

    async def delete(
        self,
        resource: str,
        identifier: Any,
        store: ResourceStore,
        *,
        invalidate: bool = True,
    ) -> None:
        binding = self.registry.get(resource)

        if not await store.delete(binding, identifier):
            raise NotFoundError(resource, identifier)
        logger.info(f"Deleted {resource}/{identifier}")

        if invalidate:
            await self.cache.flush(resource, identifier)

    # === Helpers ===

    def validate_body(self, binding: ResourceBinding, body: Optional[dict[str, Any]], partial: bool) -> dict[str, Any]:
        """
        Restrict a write body to writable fields.

        Unknown keys are dropped. Without `partial`, every required field
        must be present and non-empty.

        Raises:
            ValidationError: missing required fields
        """
        descriptor = binding.descriptor
        body = body or {}
        data = {k: body[k] for k in descriptor.writable_fields if k in body}

        errors: dict[str, list[str]] = {}
        if not partial:
            for name in descriptor.required_fields:
                if data.get(name) is None or data.get(name) == "":
                    errors[name] = [f"The {name} field is required."]
        if errors:
            raise ValidationError(errors)

        # Type coercion happens in the store
        return data

    @staticmethod
    def _page_meta(page: int, per_page: int, total: int, count: int) -> PageMeta:
        offset = (page - 1) * per_page
        return PageMeta(
            current_page=page,
            per_page=per_page,
            total=total,
            last_page=max(math.ceil(total / per_page), 1),
            from_=offset + 1 if count else None,
            to=offset + count if count else None,
        )
