from datetime import date

from fossil_app.catalog.cache import ResultCache, build_cache_key, is_cacheable, serialize_filters
from fossil_app.catalog.schemas import FossilPage, SearchFilters


def test_key_without_filters():
    assert build_cache_key(2) == "page-2"
    assert build_cache_key(2, SearchFilters()) == "page-2"


def test_key_is_independent_of_tag_order():
    a = SearchFilters(species="ammon", tags=["jurassic", "marine"])
    b = SearchFilters(tags=["marine", "jurassic"], species="ammon")
    assert build_cache_key(1, a) == build_cache_key(1, b)


def test_key_distinguishes_pages_and_filters():
    filters = SearchFilters(location="dorset", date_from=date(2020, 1, 1))
    assert build_cache_key(1, filters) != build_cache_key(2, filters)
    assert build_cache_key(1, filters) != build_cache_key(1, SearchFilters(location="dorset"))
    assert build_cache_key(1, filters) == 'page-1-{"date_from":"2020-01-01","location":"dorset"}'


def test_free_text_is_never_cacheable():
    assert is_cacheable(None)
    assert is_cacheable(SearchFilters(species="ammon"))
    assert not is_cacheable(SearchFilters(search_query="spiral"))
    assert is_cacheable(SearchFilters(search_query="   "))


def test_serialize_filters():
    assert serialize_filters(None) == ""
    assert serialize_filters(SearchFilters(search_query="x")) == '{"search_query":"x"}'


def test_result_cache_get_put_clear():
    cache = ResultCache()
    page = FossilPage(fossils=[], total_count=3)

    assert cache.get("page-1") is None
    cache.put("page-1", page)
    assert cache.get("page-1") is page
    assert "page-1" in cache
    assert len(cache) == 1

    cache.clear()
    assert cache.get("page-1") is None
    assert len(cache) == 0
