import pytest

from crudgate.interface.base import PageInfo, Pagination
from crudgate.query.pagination import default_pagination, parse_pagination
from crudgate.settings import settings


class TestParsePagination:

    def test_defaults(self):
        assert parse_pagination({}) == Pagination(page=1, limit=20, offset=0)

    def test_offset_is_derived(self):
        p = parse_pagination({"page": ["3"], "limit": ["10"]})
        assert (p.page, p.limit, p.offset) == (3, 10, 20)

    def test_limit_is_clamped(self):
        assert parse_pagination({"limit": ["500"]}).limit == 100

    @pytest.mark.parametrize("limit", ["0", "-5", "abc", ""])
    def test_bad_limit_falls_back(self, limit):
        assert parse_pagination({"limit": [limit]}).limit == 20

    @pytest.mark.parametrize("page", ["0", "-1", "two"])
    def test_bad_page_falls_back(self, page):
        assert parse_pagination({"page": [page]}).page == 1

    def test_overrides(self):
        p = parse_pagination({"limit": ["80"]}, default_limit=5, max_limit=50)
        assert p.limit == 50
        assert parse_pagination({}, default_limit=5).limit == 5

    def test_default_pagination(self):
        assert default_pagination() == Pagination(page=1, limit=20, offset=0)

    def test_default_limit_is_capped(self, monkeypatch):
        monkeypatch.setattr(settings, "DEFAULT_PAGE_LIMIT", 5000)
        assert default_pagination().limit == settings.MAX_PAGE_LIMIT
        assert parse_pagination({}).limit == settings.MAX_PAGE_LIMIT
        assert default_pagination(500).limit == settings.MAX_PAGE_LIMIT


class TestPageInfo:

    def test_middle_page(self):
        info = PageInfo.build(page=2, limit=10, total=35)
        assert info.total_pages == 4
        assert info.has_next and info.has_prev

    def test_last_and_empty(self):
        assert not PageInfo.build(page=4, limit=10, total=35).has_next
        empty = PageInfo.build(page=1, limit=10, total=0)
        assert empty.total_pages == 0
        assert not empty.has_next and not empty.has_prev
