"""
Shared fixtures: models, viewsets, an in-memory Redis double and an app
backed by in-memory SQLite.
"""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Callable, Optional

import pytest
from fastapi import Request
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError
from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, String, Text, func, select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.pool import StaticPool

from resourcegraph import ModelViewSet, Principal, ResourceGraph, Settings
from resourcegraph.core.utils import split_csv


# =============================================================================
# Models
# =============================================================================


class Base(DeclarativeBase):
    pass


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100))

    products: Mapped[list["Product"]] = relationship(back_populates="category")


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (Index("ix_products_price", "price"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    price: Mapped[float] = mapped_column(Float)
    stock: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(20), default="active")
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    secret: Mapped[Optional[str]] = mapped_column(String(50))

    category: Mapped[Optional[Category]] = relationship(back_populates="products")
    reviews: Mapped[list["Review"]] = relationship(back_populates="product")


class Review(Base):
    __tablename__ = "reviews"

    id: Mapped[int] = mapped_column(primary_key=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"))
    rating: Mapped[int] = mapped_column(Integer)
    body: Mapped[Optional[str]] = mapped_column(Text)

    product: Mapped[Product] = relationship(back_populates="reviews")


# =============================================================================
# ViewSets
# =============================================================================


class CategoryViewSet(ModelViewSet):
    model = Category
    relations = ["products"]


class ProductViewSet(ModelViewSet):
    model = Product
    fields_exclude = ["secret"]
    relations = ["category", "reviews"]


class ReviewViewSet(ModelViewSet):
    model = Review
    relations = ["product"]
    scopes = {"delete": "reviews.admin"}


VIEWSETS = [CategoryViewSet, ProductViewSet, ReviewViewSet]


# =============================================================================
# Redis double
# =============================================================================


class FakeRedis:
    """Async in-memory stand-in for the redis.asyncio commands the cache uses."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.data: dict[str, Any] = {}
        self.ttls: dict[str, int] = {}
        self.expires_at: dict[str, float] = {}
        self.commands: list[str] = []
        self.fail = False
        self.clock = clock

    def _record(self, command: str) -> None:
        self.commands.append(command)
        if self.fail:
            raise RedisConnectionError("Connection refused")
        now = self.clock()
        for key, deadline in list(self.expires_at.items()):
            if deadline <= now:
                self._forget(key)

    def _forget(self, key: str) -> bool:
        self.ttls.pop(key, None)
        self.expires_at.pop(key, None)
        return self.data.pop(key, None) is not None

    def _expire_in(self, key: str, seconds: int) -> None:
        self.ttls[key] = seconds
        self.expires_at[key] = self.clock() + seconds

    async def ping(self) -> bool:
        self._record("ping")
        return True

    async def get(self, key: str) -> Optional[str]:
        self._record("get")
        value = self.data.get(key)
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self._record("set")
        self._forget(key)
        self.data[key] = value
        if ex is not None:
            self._expire_in(key, ex)
        return True

    async def delete(self, *keys: str) -> int:
        self._record("delete")
        return sum(self._forget(key) for key in keys)

    async def expire(self, key: str, seconds: int) -> bool:
        self._record("expire")
        if key not in self.data:
            return False
        self._expire_in(key, seconds)
        return True

    async def zadd(self, name: str, mapping: dict[str, float]) -> int:
        self._record("zadd")
        scores = self.data.setdefault(name, {})
        added = len(set(mapping) - set(scores))
        scores.update(mapping)
        return added

    async def zrange(self, name: str, start: int, end: int) -> list[str]:
        self._record("zrange")
        scores = self.data.get(name, {})
        ranked = sorted(scores, key=lambda member: (scores[member], member))
        return ranked[start:] if end == -1 else ranked[start:end + 1]

    async def zremrangebyscore(self, name: str, min: float | str, max: float | str) -> int:
        self._record("zremrangebyscore")
        scores = self.data.get(name, {})
        doomed = [m for m, score in scores.items() if float(min) <= score <= float(max)]
        for member in doomed:
            del scores[member]
        if name in self.data and not scores:
            self._forget(name)
        return len(doomed)

    async def sadd(self, name: str, *values: str) -> int:
        self._record("sadd")
        members = self.data.setdefault(name, set())
        before = len(members)
        members.update(values)
        return len(members) - before

    async def smembers(self, name: str) -> set[str]:
        self._record("smembers")
        return set(self.data.get(name, set()))

    async def aclose(self) -> None:
        self._record("aclose")


# =============================================================================
# Principal resolution
# =============================================================================


def header_principal(request: Request) -> Optional[Principal]:
    """
    X-Anonymous: any value -> no principal
    X-Scopes: comma-separated scopes (default "*")
    """
    if request.headers.get("X-Anonymous"):
        return None
    scopes = split_csv(request.headers.get("X-Scopes", "*"))
    return Principal(id="tester", scopes=scopes, bearer_token="test-token")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def settings() -> Settings:
    return Settings(database_url="sqlite+aiosqlite://", use_cache=True)


@pytest.fixture
def graph(engine, fake_redis, settings) -> ResourceGraph:
    return ResourceGraph(
        VIEWSETS,
        settings,
        engine=engine,
        redis=fake_redis,
        principal_resolver=header_principal,
        title="test",
    )


@pytest.fixture
async def seeded(graph) -> ResourceGraph:
    async with graph.database.session() as session:
        session.add_all([
            Category(id=1, name="Books"),
            Category(id=2, name="Games"),
        ])
        await session.flush()
        session.add_all([
            Product(id=1, name="Novel", price=12.5, stock=3, category_id=1, created_at=datetime(2024, 1, 1)),
            Product(id=2, name="Atlas", price=150.0, stock=1, category_id=1, created_at=datetime(2024, 1, 2)),
            Product(id=3, name="Chess Set", price=220.0, stock=0, category_id=2, created_at=datetime(2024, 1, 3)),
            Product(id=4, name="Puzzle 100%", price=99.0, stock=8, category_id=2, created_at=datetime(2024, 1, 4)),
            Product(id=5, name="Dice", price=5.0, stock=50, secret="hidden", created_at=datetime(2024, 1, 5)),
        ])
        await session.flush()
        session.add_all([
            Review(id=1, product_id=2, rating=5, body="Great maps"),
            Review(id=2, product_id=2, rating=3),
        ])
        await session.commit()
    return graph


@pytest.fixture
async def client(seeded):
    transport = ASGITransport(app=seeded.app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def count_rows(graph: ResourceGraph, model: type) -> int:
    async with graph.database.session() as session:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar()
