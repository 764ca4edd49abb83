"""
Tests for the query translator
"""
import pytest

from resourcegraph.core import (
    CapabilityDescriptor,
    FilterPredicate,
    QueryTranslator,
    SortOrder,
    ValidationError,
)


@pytest.fixture
def products() -> CapabilityDescriptor:
    return CapabilityDescriptor(
        resource_name="products",
        exposed_fields=("id", "name", "price", "stock", "category_id", "created_at", "updated_at"),
        filterable_fields=("name", "price", "stock", "category_id"),
        sortable_fields=("name", "price", "created_at"),
        includable_relations=("category", "reviews"),
        timestamp_fields=("created_at", "updated_at"),
        index_names={"id": "PRIMARY", "price": "ix_products_price"},
    )


@pytest.fixture
def translator() -> QueryTranslator:
    return QueryTranslator(max_per_page=100)


def test_operator_filter_on_whitelisted_field(translator, products):
    """Test price > 100 becomes a gt predicate"""
    query = translator.translate(products, {"filter": {"price": {"operator": ">", "value": 100}}})

    assert query.filters == [FilterPredicate(field="price", op="gt", value=100)]
    assert query.rejected == []


def test_scalar_filter_means_equality(translator, products):
    query = translator.translate(products, {"filter": {"name": "Atlas", "stock": None}})

    assert query.filters == [
        FilterPredicate(field="name", op="eq", value="Atlas"),
        FilterPredicate(field="stock", op="eq", value=None),
    ]


def test_non_whitelisted_filter_is_dropped_and_recorded(translator, products):
    query = translator.translate(products, {"filter": {"secret": "x", "price": 5}})

    assert [f.field for f in query.filters] == ["price"]
    assert [(r.kind, r.name) for r in query.rejected] == [("filter", "secret")]


def test_unknown_operator_drops_only_that_predicate(translator, products):
    query = translator.translate(products, {
        "filter": {
            "price": {"operator": "regex", "value": ".*"},
            "stock": {"operator": ">=", "value": 1},
        }
    })

    assert query.filters == [FilterPredicate(field="stock", op="gte", value=1)]
    assert query.rejected[0].kind == "operator"
    assert query.rejected[0].name == "price"


@pytest.mark.parametrize("raw_op, op", [
    ("=", "eq"), ("!=", "ne"), ("<", "lt"), ("<=", "lte"), (">=", "gte"),
    ("eq", "eq"), ("NE", "ne"), ("like", "like"),
])
def test_operator_spellings_normalize(translator, products, raw_op, op):
    query = translator.translate(products, {"filter": {"name": {"operator": raw_op, "value": "a"}}})

    assert query.filters[0].op == op


def test_in_operator_splits_comma_separated_values(translator, products):
    query = translator.translate(products, {
        "filter": {"category_id": {"operator": "in", "value": "1, 2,3"}},
    })

    assert query.filters[0].value == ["1", "2", "3"]


def test_between_requires_two_bounds(translator, products):
    ok = translator.translate(products, {"filter": {"price": {"operator": "between", "value": [10, 20]}}})
    bad = translator.translate(products, {"filter": {"price": {"operator": "between", "value": "10"}}})

    assert ok.filters == [FilterPredicate(field="price", op="between", value=[10, 20])]
    assert bad.filters == []
    assert bad.rejected[0].kind == "operator"


def test_like_value_is_stringified(translator, products):
    query = translator.translate(products, {"filter": {"name": {"operator": "like", "value": 100}}})

    assert query.filters[0].value == "100"


def test_sort_direction_is_case_insensitive_and_defaults_to_asc(translator, products):
    query = translator.translate(products, {
        "sort": {"price": "DESC", "name": "sideways", "stock": "desc"},
    })

    assert query.sort == [
        SortOrder(field="price", dir="desc"),
        SortOrder(field="name", dir="asc"),
    ]
    assert [(r.kind, r.name) for r in query.rejected] == [("sort", "stock")]


def test_include_keeps_only_includable_relations(translator, products):
    query = translator.translate(products, {"include": "reviews,owner,category"})

    assert query.include == ["category", "reviews"]
    assert [(r.kind, r.name) for r in query.rejected] == [("include", "owner")]


def test_fields_projection_always_carries_primary_key(translator, products):
    query = translator.translate(products, {"fields": ["price", "name", "secret"]})

    assert query.fields == ["id", "name", "price"]
    assert [(r.kind, r.name) for r in query.rejected] == [("fields", "secret")]


def test_projection_with_no_survivors_is_empty(translator, products):
    query = translator.translate(products, {"fields": "secret"})

    assert query.fields == []


def test_per_page_and_limit_are_clamped(translator, products):
    query = translator.translate(products, {"page": "2", "per_page": "500", "limit": 1000})

    assert query.page == 2
    assert query.per_page == 100
    assert query.limit == 100


@pytest.mark.parametrize("value", ["0", "-1", "abc", 0, True])
def test_invalid_page_is_dropped(translator, products, value):
    query = translator.translate(products, {"page": value})

    assert query.page is None
    assert query.rejected[0].kind == "pagination"


def test_strict_mode_rejects_any_dropped_param(products):
    translator = QueryTranslator(strict=True)

    with pytest.raises(ValidationError) as exc_info:
        translator.translate(products, {"filter": {"secret": 1}, "sort": {"name": "asc"}})

    assert "filter.secret" in exc_info.value.errors


def test_strict_mode_accepts_clean_params(products):
    translator = QueryTranslator(strict=True)

    query = translator.translate(products, {"filter": {"price": 1}, "sort": {"name": "asc"}})

    assert len(query.filters) == 1


def test_translation_is_deterministic(translator, products):
    first = translator.translate(products, {
        "filter": {"stock": 1, "price": {"operator": ">", "value": 5}},
        "include": "reviews,category",
        "fields": "price,name",
    })
    second = translator.translate(products, {
        "fields": ["name", "price"],
        "include": ["category", "reviews"],
        "filter": {"price": {"operator": ">", "value": 5}, "stock": 1},
    })

    assert first == second


def test_empty_params_give_unbounded_query(translator, products):
    query = translator.translate(products, {})

    assert query.filters == [] and query.sort == [] and query.fields == []
    assert query.page is None and query.per_page is None and query.limit is None
