import pytest
from pydantic import ValidationError

from fossil_app.catalog.schemas import FossilCreate, SearchFilters, parse_tags


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("paleozoic, marine", ["paleozoic", "marine"]),
        (" a ,, b ,", ["a", "b"]),
        (" , ", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_tags(raw, expected):
    assert parse_tags(raw) == expected


def test_description_is_required():
    with pytest.raises(ValidationError):
        FossilCreate(description="  ")


def test_to_row_serializes_the_date():
    row = FossilCreate(description="x", discovery_date="2001-02-03", tags=[" a ", ""]).to_row()
    assert row == {
        "species": None,
        "description": "x",
        "location": None,
        "discovery_date": "2001-02-03",
        "tags": ["a"],
    }


def test_search_filter_helpers():
    filters = SearchFilters(search_query=" spiral ", species="ammon")

    assert filters.has_search()
    assert filters.without_search().search_query is None
    assert filters.without_search().species == "ammon"
    assert SearchFilters(tags=[]).is_empty()
    assert not SearchFilters(location="utah").is_empty()
