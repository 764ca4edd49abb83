"""
ResourceStore - executes bounded queries and writes against SQLAlchemy models.

One store wraps one AsyncSession. With autocommit=True every write commits
on its own; with autocommit=False the owner (the batch executor) decides
when to commit or roll back.

Usage:
    async with database.session() as session:
        store = ResourceStore(session, registry)
        items, total = await store.fetch_page(binding, query, page=1, per_page=15)
"""

from __future__ import annotations


import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, inspect, not_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase, load_only, selectinload

from ..core.errors import StoreFault, ValidationError
from ..core.query_types import BoundedQuery, FilterPredicate
from ..core.registry import ResourceBinding, ResourceRegistry

logger = logging.getLogger(__name__)


TRUE_STRINGS = {"1", "true", "yes", "on"}
FALSE_STRINGS = {"0", "false", "no", "off"}


# =============================================================================
# Value coercion
# =============================================================================


def coerce_value(column, value: Any) -> Any:
    """
    Coerce a value to the Python type of a column.

    Raises:
        ValueError: the value cannot represent the column type
    """
    if value is None:
        return None

    col_type = column.type.__class__.__name__.lower()

    # String columns - convert numbers to str
    if col_type in ("string", "text", "varchar", "unicode", "unicodetext"):
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return str(value)
        return value

    # Integer columns
    elif col_type in ("integer", "biginteger", "smallinteger"):
        if isinstance(value, bool):
            raise ValueError("must be an integer")
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            return int(value.strip())
        raise ValueError("must be an integer")

    elif col_type in ("float", "double"):
        if isinstance(value, bool):
            raise ValueError("must be a number")
        return float(value)

    elif col_type in ("numeric", "decimal"):
        if isinstance(value, bool):
            raise ValueError("must be a number")
        try:
            return Decimal(str(value))
        except InvalidOperation:
            raise ValueError("must be a number")

    elif col_type == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, int) and value in (0, 1):
            return bool(value)
        if isinstance(value, str) and value.strip().lower() in TRUE_STRINGS | FALSE_STRINGS:
            return value.strip().lower() in TRUE_STRINGS
        raise ValueError("must be a boolean")

    # DateTime columns - parse ISO strings
    elif col_type in ("datetime", "timestamp"):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        raise ValueError("must be a datetime")

    # Date columns - parse YYYY-MM-DD
    elif col_type == "date":
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            return date.fromisoformat(value[:10])
        raise ValueError("must be a date")

    return value


# =============================================================================
# Store
# =============================================================================


class ResourceStore:
    """
    Async SQLAlchemy store for registered resources.

    Every SQLAlchemyError is raised as StoreFault.
    """

    def __init__(self, session: AsyncSession, registry: ResourceRegistry, autocommit: bool = True):
        self.session = session
        self.registry = registry
        self.autocommit = autocommit

    @asynccontextmanager
    async def _guard(self, operation: str):
        try:
            yield
        except SQLAlchemyError as e:
            logger.error(f"Store {operation} failed: {e}")
            if self.autocommit:
                await self.session.rollback()
            raise StoreFault(str(e), operation=operation) from e

    # === Transaction control ===

    async def commit(self) -> None:
        async with self._guard("commit"):
            await self.session.commit()

    async def rollback(self) -> None:
        try:
            await self.session.rollback()
        except SQLAlchemyError as e:
            raise StoreFault(str(e), operation="rollback") from e

    # === Reads ===

    async def fetch_page(
        self,
        binding: ResourceBinding,
        query: BoundedQuery,
        page: int,
        per_page: int,
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Fetch one page of rows and the total row count.

        A row limit on the query bounds the paginated window: the total never
        exceeds it and pages past it are empty.
        """
        model = binding.model
        base = self._apply_filters(select(model), model, query.filters)

        async with self._guard("count"):
            count_stmt = select(func.count()).select_from(base.subquery())
            total = (await self.session.execute(count_stmt)).scalar() or 0

        offset = (page - 1) * per_page
        take = per_page
        if query.limit is not None:
            total = min(total, query.limit)
            take = min(per_page, query.limit - offset)
        if take <= 0:
            return [], total

        stmt = self._apply_options(base, binding, query)
        stmt = self._apply_sort(stmt, model, query)
        stmt = self._apply_hints(stmt, model, query)
        stmt = stmt.offset(offset).limit(take)

        async with self._guard("query"):
            rows = (await self.session.execute(stmt)).scalars().all()

        return [self._to_dict(row, binding, query) for row in rows], total

    async def fetch_one(
        self,
        binding: ResourceBinding,
        identifier: Any,
        query: Optional[BoundedQuery] = None,
    ) -> Optional[dict[str, Any]]:
        """Fetch one row by primary key, or None."""
        model = binding.model
        pk_value = self._coerce_key(binding, identifier)
        if pk_value is None:
            return None

        stmt = select(model).where(self._pk_column(binding) == pk_value)
        if query is not None:
            stmt = self._apply_options(stmt, binding, query)

        async with self._guard("read"):
            row = (await self.session.execute(stmt)).scalars().first()

        if row is None:
            return None
        return self._to_dict(row, binding, query)

    # === Writes ===

    async def insert(self, binding: ResourceBinding, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a row and return its exposed fields."""
        values = self.coerce_data(binding.model, data)

        async with self._guard("create"):
            instance = binding.model(**values)
            self.session.add(instance)
            await self.session.flush()
            await self.session.refresh(instance)
            if self.autocommit:
                await self.session.commit()

        return self._to_dict(instance, binding)

    async def update(
        self,
        binding: ResourceBinding,
        identifier: Any,
        data: dict[str, Any],
    ) -> Optional[dict[str, Any]]:
        """Update a row by primary key. Returns None when it does not exist."""
        values = self.coerce_data(binding.model, data)
        pk_value = self._coerce_key(binding, identifier)
        if pk_value is None:
            return None

        async with self._guard("update"):
            instance = await self.session.get(binding.model, pk_value)
            if instance is None:
                return None
            for key, value in values.items():
                setattr(instance, key, value)
            await self.session.flush()
            await self.session.refresh(instance)
            if self.autocommit:
                await self.session.commit()

        return self._to_dict(instance, binding)

    async def delete(self, binding: ResourceBinding, identifier: Any) -> bool:
        """Delete a row by primary key. Returns False when it does not exist."""
        pk_value = self._coerce_key(binding, identifier)
        if pk_value is None:
            return False

        async with self._guard("delete"):
            instance = await self.session.get(binding.model, pk_value)
            if instance is None:
                return False
            await self.session.delete(instance)
            await self.session.flush()
            if self.autocommit:
                await self.session.commit()

        return True

    # === Coercion ===

    def coerce_data(self, model: type[DeclarativeBase], data: dict[str, Any]) -> dict[str, Any]:
        """
        Coerce data values to match model column types.

        Raises:
            ValidationError: one message per field that failed coercion
        """
        mapper = inspect(model)
        coerced: dict[str, Any] = {}
        errors: dict[str, list[str]] = {}

        for key, value in data.items():
            column = mapper.columns.get(key)
            if column is None:
                coerced[key] = value
                continue
            try:
                coerced[key] = coerce_value(column, value)
            except (ValueError, TypeError) as e:
                reason = str(e) if str(e).startswith("must") else "is invalid"
                errors[key] = [f"The {key} field {reason}."]

        if errors:
            raise ValidationError(errors)
        return coerced

    def _coerce_key(self, binding: ResourceBinding, identifier: Any) -> Any:
        try:
            return coerce_value(self._pk_column(binding), identifier)
        except (ValueError, TypeError):
            return None

    # === Statement building ===

    def _pk_column(self, binding: ResourceBinding):
        return getattr(binding.model, binding.descriptor.primary_key)

    def _apply_filters(self, stmt, model: type[DeclarativeBase], filters: list[FilterPredicate]):
        """Apply normalized filters to a select statement."""
        mapper = inspect(model)
        for f in filters:
            column = getattr(model, f.field, None)
            mapped = mapper.columns.get(f.field)
            if column is None or mapped is None:
                continue

            value = self._coerce_filter_value(mapped, f)

            if f.op == "eq":
                stmt = stmt.where(column.is_(None) if value is None else column == value)
            elif f.op == "ne":
                stmt = stmt.where(column.isnot(None) if value is None else column != value)
            elif f.op == "lt":
                stmt = stmt.where(column < value)
            elif f.op == "gt":
                stmt = stmt.where(column > value)
            elif f.op == "lte":
                stmt = stmt.where(column <= value)
            elif f.op == "gte":
                stmt = stmt.where(column >= value)
            elif f.op == "like":
                stmt = stmt.where(column.contains(str(f.value), autoescape=True))
            elif f.op == "in":
                stmt = stmt.where(column.in_(value))
            elif f.op == "not_in":
                stmt = stmt.where(column.not_in(value))
            elif f.op == "between":
                stmt = stmt.where(column.between(value[0], value[1]))
            elif f.op == "not_between":
                stmt = stmt.where(not_(column.between(value[0], value[1])))

        return stmt

    def _coerce_filter_value(self, column, predicate: FilterPredicate) -> Any:
        """Best-effort coercion; values that do not coerce are compared as given."""
        if predicate.op == "like":
            return predicate.value

        def convert(value: Any) -> Any:
            try:
                return coerce_value(column, value)
            except (ValueError, TypeError):
                return value

        if isinstance(predicate.value, (list, tuple)):
            return [convert(v) for v in predicate.value]
        return convert(predicate.value)

    def _apply_sort(self, stmt, model: type[DeclarativeBase], query: BoundedQuery):
        for order in query.sort:
            column = getattr(model, order.field, None)
            if column is not None:
                if order.dir == "desc":
                    stmt = stmt.order_by(column.desc())
                else:
                    stmt = stmt.order_by(column.asc())
        return stmt

    def _apply_hints(self, stmt, model: type[DeclarativeBase], query: BoundedQuery):
        """USE INDEX hint; rendered by MySQL only, ignored by other dialects."""
        if not query.index_hints:
            return stmt
        return stmt.with_hint(model, f"USE INDEX ({', '.join(query.index_hints)})", dialect_name="mysql")

    def _apply_options(self, stmt, binding: ResourceBinding, query: BoundedQuery):
        """Projection (load_only) and eager loading of included relations."""
        model = binding.model
        mapper = inspect(model)
        options = []

        if query.fields:
            columns = list(query.fields)
            # Included relations need their join columns loaded
            for name in query.include:
                relationship = mapper.relationships[name]
                columns.extend(c.key for c in relationship.local_columns if c.key in mapper.columns)
            columns = list(dict.fromkeys(columns))
            options.append(load_only(*[getattr(model, c) for c in columns]))

        for name in query.include:
            options.append(selectinload(getattr(model, name)))

        if options:
            stmt = stmt.options(*options)
        return stmt

    # === Serialization ===

    def _to_dict(
        self,
        instance: DeclarativeBase,
        binding: ResourceBinding,
        query: Optional[BoundedQuery] = None,
    ) -> dict[str, Any]:
        """Convert model instance to a JSON-compatible dict."""
        fields = list(query.fields) if query and query.fields else list(binding.descriptor.exposed_fields)
        result = {name: getattr(instance, name) for name in fields}

        if query is not None:
            for name in query.include:
                result[name] = self._related_to_dict(instance, name)

        return jsonable_encoder(result)

    def _related_to_dict(self, instance: DeclarativeBase, name: str) -> Any:
        relationship = inspect(type(instance)).relationships[name]
        related_binding = self.registry.for_model(relationship.mapper.class_)
        if related_binding is not None:
            fields = list(related_binding.descriptor.exposed_fields)
        else:
            # unregistered models expose nothing beyond their identity
            fields = [c.key for c in relationship.mapper.primary_key]

        value = getattr(instance, name)
        if value is None:
            return None
        if relationship.uselist:
            return [{f: getattr(item, f) for f in fields} for item in value]
        return {f: getattr(value, f) for f in fields}
