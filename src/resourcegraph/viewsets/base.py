"""
ViewSet base class for resourcegraph - DRF-style capability declaration.

Models stay pure ORM. All exposure configuration lives here and is turned
into a static CapabilityDescriptor once, at registration.

Usage:
    class ProductViewSet(ModelViewSet):
        model = Product
        # resource_name auto-inferred: "products"

        fields_exclude = ["internal_note"]
        filterable_fields = ["price", "category_id"]
        relations = ["category", "reviews"]
        scopes = {"list": "products.read", "read": "products.read"}
"""

from __future__ import annotations


from typing import List, Optional

from sqlalchemy import inspect
from sqlalchemy.orm import DeclarativeBase

from ..core.defs import DEFAULT_SCOPES, OPERATION_KINDS, CapabilityDescriptor
from ..core.errors import GraphConfigError
from ..core.utils import resource_name_for


# =============================================================================
# Auto-discovery helpers
# =============================================================================

# Types that are sortable by default
DEFAULT_SORTABLE_TYPES = {"int", "string", "float", "datetime", "date", "bool", "enum"}

# Column names treated as row timestamps
TIMESTAMP_FIELDS = ("created_at", "updated_at")


def get_column_type(column) -> str:
    """Map SQLAlchemy column type to simple type string."""
    type_name = column.type.__class__.__name__.lower()

    if type_name in ("integer", "biginteger", "smallinteger"):
        return "int"
    elif type_name in ("string", "text", "varchar", "unicode", "unicodetext", "uuid"):
        return "string"
    elif type_name in ("boolean",):
        return "bool"
    elif type_name in ("float", "numeric", "decimal", "double"):
        return "float"
    elif type_name in ("datetime", "timestamp"):
        return "datetime"
    elif type_name in ("date",):
        return "date"
    elif type_name in ("json", "jsonb"):
        return "json"
    elif type_name == "enum":
        return "enum"
    else:
        return "string"


def get_model_key(model: type[DeclarativeBase]) -> str:
    """Primary key field name. Composite keys are not exposable."""
    mapper = inspect(model)
    keys = [column.key for column in mapper.primary_key]
    if len(keys) != 1:
        raise GraphConfigError(f"{model.__name__}: exactly one primary key column is required, got {keys}")
    return keys[0]


def get_column_types(model: type[DeclarativeBase]) -> dict[str, str]:
    """Column name -> simple type for every mapped column."""
    return {column.key: get_column_type(column) for column in inspect(model).columns}


def discover_index_names(model: type[DeclarativeBase]) -> dict[str, str]:
    """
    Map leading index columns to index names from the table schema.

    Only the first column of each index is considered, which is the column
    an index can serve on its own. The primary key maps to "PRIMARY".
    """
    table = inspect(model).local_table
    result: dict[str, str] = {get_model_key(model): "PRIMARY"}
    for index in sorted(table.indexes, key=lambda i: i.name or ""):
        columns = list(index.columns)
        if columns and index.name and columns[0].key not in result:
            result[columns[0].key] = index.name
    return result


def discover_required_fields(model: type[DeclarativeBase], candidates: list[str]) -> list[str]:
    """Non-nullable columns without client or server defaults."""
    mapper = inspect(model)
    required = []
    for name in candidates:
        column = mapper.columns.get(name)
        if column is None or column.primary_key:
            continue
        if not column.nullable and column.default is None and column.server_default is None:
            required.append(name)
    return required


# =============================================================================
# ViewSet base class
# =============================================================================


class ModelViewSet:
    """
    Base viewset for exposed entity models.

    Provides auto-discovery of fields from the SQLAlchemy model.
    Override attributes to customize behavior.

    Defaults:
        fields             all mapped columns minus fields_exclude
        filterable_fields  all exposed fields
        sortable_fields    exposed fields of a sortable column type
        relations          none
        writable_fields    exposed fields minus the primary key
        scopes             list/read -> "read", create/update/delete -> same name
    """

    # Required
    model: type[DeclarativeBase]

    # Optional - auto-inferred from model name if not specified
    resource_name: Optional[str] = None

    # Field configuration
    fields: Optional[List[str]] = None  # None = all columns
    fields_exclude: list[str] = []
    filterable_fields: Optional[List[str]] = None
    sortable_fields: Optional[List[str]] = None
    relations: list[str] = []
    writable_fields: Optional[List[str]] = None

    # Operation kind -> required scope
    scopes: dict[str, str] = {}

    @classmethod
    def get_resource_name(cls) -> str:
        """Resource name. Plural kebab form of the model name unless overridden."""
        if cls.resource_name is not None:
            return cls.resource_name
        return resource_name_for(cls.model.__name__)

    @classmethod
    def get_exposed_fields(cls) -> list[str]:
        columns = list(get_column_types(cls.model))
        if cls.fields is not None:
            unknown = [f for f in cls.fields if f not in columns]
            if unknown:
                raise GraphConfigError(f"{cls.__name__}: unknown fields {unknown}")
            columns = list(cls.fields)
        return [f for f in columns if f not in cls.fields_exclude]

    @classmethod
    def get_filterable_fields(cls, exposed: list[str]) -> list[str]:
        if cls.filterable_fields is None:
            return list(exposed)
        return cls._subset("filterable_fields", cls.filterable_fields, exposed)

    @classmethod
    def get_sortable_fields(cls, exposed: list[str]) -> list[str]:
        if cls.sortable_fields is None:
            types = get_column_types(cls.model)
            return [f for f in exposed if types.get(f) in DEFAULT_SORTABLE_TYPES]
        return cls._subset("sortable_fields", cls.sortable_fields, exposed)

    @classmethod
    def get_writable_fields(cls, exposed: list[str], primary_key: str) -> list[str]:
        if cls.writable_fields is None:
            return [f for f in exposed if f != primary_key]
        return cls._subset("writable_fields", cls.writable_fields, exposed)

    @classmethod
    def get_relations(cls) -> list[str]:
        """Includable relations; each must be a mapped relationship."""
        mapped = set(inspect(cls.model).relationships.keys())
        unknown = [r for r in cls.relations if r not in mapped]
        if unknown:
            raise GraphConfigError(f"{cls.__name__}: unknown relations {unknown}")
        return list(dict.fromkeys(cls.relations))

    @classmethod
    def get_scopes(cls) -> dict[str, str]:
        unknown = [op for op in cls.scopes if op not in OPERATION_KINDS]
        if unknown:
            raise GraphConfigError(f"{cls.__name__}: unknown operation kinds in scopes {unknown}")
        return {**DEFAULT_SCOPES, **cls.scopes}

    @classmethod
    def to_descriptor(cls) -> CapabilityDescriptor:
        """Build the immutable capability descriptor for this viewset."""
        if getattr(cls, "model", None) is None:
            raise GraphConfigError(f"{cls.__name__}: model is required")

        primary_key = get_model_key(cls.model)
        exposed = cls.get_exposed_fields()
        writable = cls.get_writable_fields(exposed, primary_key)
        columns = get_column_types(cls.model)

        return CapabilityDescriptor(
            resource_name=cls.get_resource_name(),
            exposed_fields=tuple(exposed),
            filterable_fields=tuple(cls.get_filterable_fields(exposed)),
            sortable_fields=tuple(cls.get_sortable_fields(exposed)),
            includable_relations=tuple(cls.get_relations()),
            scopes_by_operation=cls.get_scopes(),
            primary_key=primary_key,
            timestamp_fields=tuple(f for f in TIMESTAMP_FIELDS if f in columns),
            index_names=discover_index_names(cls.model),
            writable_fields=tuple(writable),
            required_fields=tuple(discover_required_fields(cls.model, writable)),
        )

    @classmethod
    def _subset(cls, attr: str, names: list[str], exposed: list[str]) -> list[str]:
        unknown = [n for n in names if n not in exposed]
        if unknown:
            raise GraphConfigError(f"{cls.__name__}.{attr}: fields {unknown} are not exposed")
        return list(dict.fromkeys(names))
