"""
Tests for the service app factory and engine lifecycle
"""
import logging

from sqlalchemy import inspect as sa_inspect

from resourcegraph import ResourceGraph, Settings
from resourcegraph.service import HealthcheckLogFilter, create_service_app

from conftest import VIEWSETS, Base, FakeRedis


def _record(message: str) -> logging.LogRecord:
    return logging.LogRecord("uvicorn.access", logging.INFO, __file__, 0, message, None, None)


def test_healthcheck_requests_are_not_logged():
    log_filter = HealthcheckLogFilter()

    assert log_filter.filter(_record('127.0.0.1 - "GET /api/ping HTTP/1.1" 200')) is False
    assert log_filter.filter(_record('127.0.0.1 - "GET /api/products HTTP/1.1" 200')) is True


async def test_log_filter_is_installed_once():
    for name in ("one", "two"):
        app = create_service_app(name)
        async with app.router.lifespan_context(app):
            pass

    filters = logging.getLogger("uvicorn.access").filters
    assert sum(isinstance(f, HealthcheckLogFilter) for f in filters) == 1


async def test_lifespan_runs_hooks():
    calls = []

    async def startup():
        calls.append("startup")

    def shutdown():
        calls.append("shutdown")

    app = create_service_app("hooks", on_startup=startup, on_shutdown=shutdown)
    async with app.router.lifespan_context(app):
        assert calls == ["startup"]

    assert calls == ["startup", "shutdown"]


async def test_engine_lifecycle_leaves_injected_handles_open(engine):
    fake = FakeRedis()
    graph = ResourceGraph(VIEWSETS, Settings(use_cache=True), engine=engine, redis=fake)

    async with graph.app.router.lifespan_context(graph.app):
        assert graph.cache.enabled

    assert "aclose" not in fake.commands
    async with graph.database.session() as session:
        assert (await session.execute(Base.metadata.tables["products"].select())).all() == []


async def test_create_tables_at_startup(tmp_path):
    settings = Settings(database_url=f"sqlite+aiosqlite:///{tmp_path}/shop.db")
    graph = ResourceGraph(VIEWSETS, settings, create_tables=True)

    async with graph.app.router.lifespan_context(graph.app):
        async with graph.database.engine.connect() as conn:
            tables = await conn.run_sync(lambda sync_conn: sa_inspect(sync_conn).get_table_names())

    assert {"categories", "products", "reviews"} <= set(tables)


def test_cache_is_off_without_redis():
    graph = ResourceGraph(VIEWSETS, Settings(database_url="sqlite+aiosqlite://"))

    assert graph.redis_client is None
    assert graph.cache.enabled is False
