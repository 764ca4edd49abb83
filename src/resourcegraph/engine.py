"""
ResourceGraph - main entry point for creating a resource API application.

Usage:
    from resourcegraph import ModelViewSet, ResourceGraph, Settings

    class ProductViewSet(ModelViewSet):
        model = Product
        filterable_fields = ["price", "category_id"]
        relations = ["category"]

    graph = ResourceGraph(
        [ProductViewSet, CategoryViewSet],
        Settings(database_url="postgresql+asyncpg://...", use_cache=True),
    )

    app = graph.app
"""

from __future__ import annotations


import logging
from typing import Any, Iterable, Optional

import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncEngine

from . import __version__
from .api.router import PrincipalResolver, create_resource_router
from .cache.client import RedisClient
from .cache.response_cache import ResponseCache
from .config import Settings
from .core.optimizer import QueryOptimizer
from .core.registry import ResourceRegistry
from .core.translator import QueryTranslator
from .runtime.batch_executor import BatchExecutor
from .runtime.dispatcher import RequestDispatcher
from .runtime.resources import ResourceService
from .service.app import create_service_app
from .service.database import Database

logger = logging.getLogger(__name__)


class ResourceGraph:
    """
    Wires registry, store, cache and executors into a FastAPI app.

    Handles passed in (engine, redis) belong to the caller and are not
    closed at shutdown; handles created here are.
    """

    version = __version__

    def __init__(
        self,
        viewsets: Iterable[type],
        settings: Optional[Settings] = None,
        *,
        engine: Optional[AsyncEngine] = None,
        redis: Optional[aioredis.Redis] = None,
        principal_resolver: Optional[PrincipalResolver] = None,
        title: str = "resourcegraph",
        create_tables: bool = False,
    ):
        """
        Initialize the engine.

        Args:
            viewsets: ModelViewSet subclasses to expose
            settings: Engine settings (default: Settings() from the environment)
            engine: Existing AsyncEngine instead of settings.database_url
            redis: Existing redis.asyncio connection instead of settings.redis_url
            principal_resolver: Callable(request) -> Principal | None (sync or async)
            title: FastAPI app title
            create_tables: Create missing tables for all models at startup
        """
        self.settings = settings or Settings()
        self.principal_resolver = principal_resolver
        self.create_tables = create_tables

        self.registry = ResourceRegistry(viewsets)

        self._owns_engine = engine is None
        self.database = Database(self.settings.database_url, engine=engine, echo=self.settings.sql_echo)

        self._owns_redis = redis is None
        self.redis_client: Optional[RedisClient] = None
        if redis is not None or self.settings.use_cache:
            self.redis_client = RedisClient(self.settings.redis_url, redis=redis)

        self.cache = ResponseCache(
            self.redis_client,
            prefix=self.settings.cache_prefix,
            ttl=self.settings.cache_ttl,
            enabled=self.settings.use_cache,
        )
        self.translator = QueryTranslator(
            max_per_page=self.settings.max_per_page,
            strict=self.settings.strict_params,
        )
        self.optimizer = QueryOptimizer(
            default_sort_limit=self.settings.default_sort_limit,
            prune_columns=self.settings.prune_columns,
        )
        self.service = ResourceService(
            self.registry,
            self.translator,
            self.optimizer,
            self.cache,
            default_per_page=self.settings.default_per_page,
        )
        self.dispatcher = RequestDispatcher(
            self.registry,
            self.service,
            route_prefix=self.settings.route_prefix,
            enforce_scopes=self.settings.enforce_scopes,
            debug=self.settings.debug,
        )
        self.batch_executor = BatchExecutor(
            self.dispatcher,
            self.database.session,
            self.registry,
            self.cache,
            default_timeout=self.settings.batch_timeout,
            max_operations=self.settings.max_batch_operations,
            debug=self.settings.debug,
        )

        self.app = self._create_app(title)

    def _create_app(self, title: str):
        app = create_service_app(
            title,
            on_startup=self.startup,
            on_shutdown=self.shutdown,
            version=self.version,
        )
        app.include_router(create_resource_router(self))

        # Store reference to the engine on app
        app.state.graph = self
        return app

    # === Lifecycle ===

    async def startup(self):
        if self.create_tables:
            # Models may be declared on more than one declarative base
            metadatas = {id(b.model.metadata): b.model.metadata for b in self.registry.bindings()}
            for metadata in metadatas.values():
                await self.database.create_all(metadata)
        if self.redis_client is not None:
            await self.redis_client.connect()
        logger.info(
            f"resourcegraph started: {len(self.registry)} resources "
            f"({', '.join(self.registry.names())}), cache {'on' if self.cache.enabled else 'off'}"
        )

    async def shutdown(self):
        if self.redis_client is not None and self._owns_redis:
            await self.redis_client.disconnect()
        if self._owns_engine:
            await self.database.dispose()
        logger.info("resourcegraph stopped")

    # === Operations ===

    async def flush_cache(self, resource: Optional[str] = None, identifier: Any = None) -> bool:
        """Invalidate cached responses (see ResponseCache.flush)."""
        return await self.cache.flush(resource, identifier)

    def describe(self) -> dict[str, Any]:
        return self.registry.describe()
