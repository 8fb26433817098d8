import datetime

import pytest

from fastcrud import exceptions
from fastcrud.search import date_range, split_relation


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2024-01", (datetime.datetime(2024, 1, 1), datetime.datetime(2024, 1, 31, 23, 59, 59))),
        ("2024-02", (datetime.datetime(2024, 2, 1), datetime.datetime(2024, 2, 29, 23, 59, 59))),
        ("2023-02", (datetime.datetime(2023, 2, 1), datetime.datetime(2023, 2, 28, 23, 59, 59))),
        ("2023-11,2024-02", (datetime.datetime(2023, 11, 1), datetime.datetime(2024, 2, 29, 23, 59, 59))),
        (
            "2024-01-01,2024-01-05",
            (datetime.datetime(2024, 1, 1), datetime.datetime(2024, 1, 5, 23, 59, 59)),
        ),
        ("2024-01-01", (datetime.datetime(2024, 1, 1), datetime.datetime(2024, 1, 1, 23, 59, 59))),
        ("2024-01-01,", (datetime.datetime(2024, 1, 1), datetime.datetime(2024, 1, 1, 23, 59, 59))),
        (
            "2024-01-01, 2024-01-05",
            (datetime.datetime(2024, 1, 1), datetime.datetime(2024, 1, 5, 23, 59, 59)),
        ),
        (" 2024-02 ", (datetime.datetime(2024, 2, 1), datetime.datetime(2024, 2, 29, 23, 59, 59))),
        # Month ranges end on the last day of the end month
        ("2024-01,2024-01-05", (datetime.datetime(2024, 1, 1), datetime.datetime(2024, 1, 31, 23, 59, 59))),
    ],
)
def test_date_range__success(value, expected):
    assert date_range(value) == expected


@pytest.mark.parametrize(
    "value",
    [
        "2024-13",
        "yesterday",
        "2024-01-01,2024-02-30",
        "2024-01,2024-13-05",
        "",
    ],
)
def test_date_range__invalid__fails(value):
    with pytest.raises(exceptions.DateParseError):
        date_range(value)


@pytest.mark.parametrize(
    "column, expected",
    [
        ("name", ([], "name")),
        ("category.id", (["category"], "id")),
        ("category.section.name", (["category", "section"], "name")),
    ],
)
def test_split_relation(column, expected):
    assert split_relation(column) == expected
