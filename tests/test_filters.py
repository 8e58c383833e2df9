from datetime import date

from fossil_app.catalog.filters import apply_filters, filter_fossils, order_newest_first
from fossil_app.catalog.schemas import Fossil, SearchFilters
from fossil_app.storage import InMemoryBackend

from .conftest import make_row


def _query():
    return InMemoryBackend().table("fossils").select("*")


def _fossils(*rows):
    return [Fossil.model_validate(dict(row, id=str(i))) for i, row in enumerate(rows)]


def test_no_filters_adds_no_predicates():
    assert apply_filters(_query(), None).filters == []
    assert apply_filters(_query(), SearchFilters()).filters == []


def test_each_structured_filter_becomes_a_predicate():
    filters = SearchFilters(
        species="trilo",
        location="utah",
        tags=["paleozoic", "marine"],
        date_from=date(2020, 1, 1),
        date_to=date(2020, 12, 31),
    )
    query = apply_filters(_query(), filters)

    assert query.filters == [
        ("ilike", "species", "%trilo%"),
        ("ilike", "location", "%utah%"),
        ("contains", "tags", ["paleozoic", "marine"]),
        ("gte", "discovery_date", "2020-01-01"),
        ("lte", "discovery_date", "2020-12-31"),
    ]


def test_free_text_and_empty_tags_are_not_pushed_down():
    query = apply_filters(_query(), SearchFilters(search_query="utah", tags=[]))
    assert query.filters == []


def test_order_newest_first():
    query = order_newest_first(_query())
    assert query.ordering == [("discovery_date", True, False), ("created_at", True, False)]


class TestFilterFossils:
    """Free-text search over already fetched fossils."""

    def setup_method(self):
        self.fossils = _fossils(
            make_row(species="Trilobite", location="Utah", description="nice", tags=["paleozoic"]),
            make_row(species="Ammonite", location="France", description="spiral", tags=[]),
        )

    def test_location_match(self):
        result = filter_fossils(self.fossils, SearchFilters(search_query="utah"))
        assert [f.species for f in result] == ["Trilobite"]

    def test_description_match_is_case_insensitive(self):
        result = filter_fossils(self.fossils, SearchFilters(search_query="SPIRAL"))
        assert [f.species for f in result] == ["Ammonite"]

    def test_tag_match(self):
        result = filter_fossils(self.fossils, SearchFilters(search_query="Paleo"))
        assert [f.species for f in result] == ["Trilobite"]

    def test_query_is_trimmed(self):
        result = filter_fossils(self.fossils, SearchFilters(search_query="  ammon  "))
        assert [f.species for f in result] == ["Ammonite"]

    def test_blank_or_missing_query_returns_input(self):
        assert filter_fossils(self.fossils, None) is self.fossils
        assert filter_fossils(self.fossils, SearchFilters()) is self.fossils
        assert filter_fossils(self.fossils, SearchFilters(search_query="   ")) is self.fossils

    def test_missing_optional_fields_do_not_match(self):
        fossils = _fossils(make_row(description="bare"), make_row(species="Crinoid", description="stem"))
        result = filter_fossils(fossils, SearchFilters(search_query="crinoid"))
        assert [f.species for f in result] == ["Crinoid"]

    def test_relative_order_is_preserved(self):
        fossils = _fossils(
            make_row(description="shell one"),
            make_row(description="bone"),
            make_row(description="shell two"),
        )
        result = filter_fossils(fossils, SearchFilters(search_query="shell"))
        assert [f.description for f in result] == ["shell one", "shell two"]
