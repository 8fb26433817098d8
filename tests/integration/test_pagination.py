import pytest

from fastcrud.pagination import apply_limit, paginate
from fastcrud.query import Query
from fastcrud.sort import apply_sort

from conftest import Product, Section, ids, populate_sections


@pytest.fixture(scope="function")
def sections(Session):
    populate_sections(Session, 85)
    with Session() as session:
        yield Query(session, Section)


def test_paginate__first_page(sections):
    page = paginate(sections.order_by("id"), per_page=40, serializer=lambda row: row.id)
    assert page.rows == list(range(1, 41))
    assert page.meta == {"current": 1, "perPage": 40, "pagesCount": 3, "count": 85}


def test_paginate__last_page(sections):
    page = paginate(sections.order_by("id"), per_page=40, serializer=lambda row: row.id, page=3)
    assert page.rows == [81, 82, 83, 84, 85]
    assert page.meta == {"current": 3, "perPage": 40, "pagesCount": 3, "count": 85}


def test_paginate__past_last_page(sections):
    page = paginate(sections, per_page=40, page=4)
    assert page.rows == []
    assert page.meta["count"] == 85


def test_paginate__skip_pagination(sections):
    page = paginate(sections, per_page=40, serializer=lambda row: row.to_dict(), skip_pagination=True)
    assert len(page.rows) == 85
    assert page.rows[0] == {"id": 1, "external_id": None, "name": "Section 001"}
    assert page.meta == {}


@pytest.mark.parametrize("per_page", [0, -5])
def test_paginate__non_positive_page_size__framework_default(sections, per_page):
    page = paginate(sections, per_page=per_page)
    assert len(page.rows) == Query.default_per_page
    assert page.meta["perPage"] == Query.default_per_page
    assert page.meta["pagesCount"] == 6


def test_paginate__default_page_size(sections):
    page = paginate(sections)
    assert len(page.rows) == 40
    assert page.meta["pagesCount"] == 3


def test_paginate__empty(Session):
    with Session() as session:
        page = paginate(Query(session, Section), per_page=10)
    assert page.rows == []
    assert page.meta == {"current": 1, "perPage": 10, "pagesCount": 0, "count": 0}


@pytest.mark.parametrize("limit", [None, 0, -1])
def test_apply_limit__noop(sections, limit):
    apply_limit(sections, limit)
    assert sections.limit_value is None
    assert len(sections.get()) == 85


def test_apply_limit__caps_rows(sections):
    apply_limit(sections, 5)
    assert sections.limit_value == 5
    assert [row.id for row in sections.order_by("id").get()] == [1, 2, 3, 4, 5]


@pytest.mark.parametrize(
    "sort, expected",
    [
        ("", [1, 2, 3, 4, 5]),
        ("name", [1, 2, 5, 4, 3]),
        ("-name", [3, 4, 5, 2, 1]),
        ("-categoryId,name", [5, 4, 3, 1, 2]),
        (" categoryId , -price ,", [1, 2, 3, 4, 5]),
    ],
)
def test_apply_sort__success(catalogue, sort, expected):
    with catalogue() as session:
        query = Query(session, Product)
        apply_sort(query, sort)
        assert [row.id for row in query.get()] == expected


def test_apply_sort__empty__noop(catalogue):
    with catalogue() as session:
        query = Query(session, Product)
        apply_sort(query, "")
        assert query.orders == []


def test_apply_sort__token_order(catalogue):
    with catalogue() as session:
        query = Query(session, Product)
        apply_sort(query, "name,-price")
        assert [str(clause) for clause in query.orders] == ["products.name ASC", "products.price DESC"]
