import pytest
from sqlalchemy.dialects import mysql, postgresql, sqlite

from fastcrud.query import Query
from fastcrud.search import apply_filters

from conftest import Product

DIALECTS = {
    "postgresql": postgresql.dialect(),
    "mysql": mysql.dialect(),
    "mariadb": mysql.dialect(),
    "sqlite": sqlite.dialect(),
}


def compiled(dialect: str, filters: dict):
    """Compiles the WHERE clause for the filters without a database connection"""
    query = Query(None, Product, dialect=dialect)
    apply_filters(query, filters)
    return query.where_clause().compile(dialect=DIALECTS[dialect])


@pytest.mark.parametrize(
    "dialect, expected",
    [
        ("postgresql", "products.name ILIKE "),
        ("mysql", "products.name LIKE "),
        ("sqlite", "products.name LIKE "),
    ],
)
def test_like__dialect(dialect, expected):
    sql = str(compiled(dialect, {"name": {"like": "phone"}}))
    assert expected in sql
    assert "%phone%" in compiled(dialect, {"name": {"like": "phone"}}).params.values()


def test_like__relation__keeps_dialect():
    sql = str(compiled("postgresql", {"category.section.name": {"like": "garden"}}))
    assert "sections.name ILIKE " in sql
    assert "products.name" not in sql


def test_json__postgresql():
    result = compiled("postgresql", {"tags": {"json": {"color": "black"}}})
    assert "CAST(products.tags AS JSONB) @> " in str(result)
    assert {"color": "black"} in result.params.values()


@pytest.mark.parametrize("dialect", ["mysql", "mariadb"])
def test_json__mysql(dialect):
    result = compiled(dialect, {"tags": {"json": {"color": "black"}}})
    assert "json_contains(products.tags, " in str(result)
    assert '{"color": "black"}' in result.params.values()


def test_json__alternates__postgresql():
    sql = str(compiled("postgresql", {"tags": {"json": {"color": "white,green"}}}))
    assert sql.count("CAST(products.tags AS JSONB) @> ") == 2
    assert " OR " in sql


def test_json__fallback():
    result = compiled("sqlite", {"tags": {"json": {"color": "black"}}})
    assert "json_extract(products.tags, " in str(result)
    assert '$."color"' in result.params.values()


def test_soft_delete_scope__compiled():
    sql = str(compiled("postgresql", {"name": "Shovel"}))
    assert "products.deleted_at IS NULL" in sql
