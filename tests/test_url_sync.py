import pytest

from core.filters import DATE_POSTED, EXPERIENCE_LEVELS, WORK_MODES, FilterSet, FilterStateStore
from core.url_sync import MemoryHistory, URLSynchronizer, list_url, parse_query, serialize

ROUND_TRIP_CASES = (
    [FilterSet()]
    + [FilterSet(work_mode=m) for m in WORK_MODES]
    + [FilterSet(experience_level=e) for e in EXPERIENCE_LEVELS]
    + [FilterSet(date_posted=d) for d in DATE_POSTED]
    + [
        FilterSet(search="   "),
        FilterSet(search="x" * 200),
        FilterSet(search="data & ml = 100%?"),
        FilterSet(search="caf\u00e9 d\u00e9veloppeur"),
        FilterSet(location="c\u00f4te-divoire"),
        FilterSet(location="south-africa", visa_sponsorship=True),
        FilterSet(visa_sponsorship=False, work_mode="hybrid"),
        FilterSet(
            search="python",
            location="ghana",
            work_mode="remote",
            experience_level="senior",
            visa_sponsorship=True,
            date_posted="week",
        ),
    ]
)


class TestSerialize:
    def test_omits_empty_fields_and_first_page(self):
        assert serialize(FilterSet(), 1) == ""
        assert serialize(FilterSet(work_mode="remote"), 1) == "workMode=remote"

    def test_uses_url_keys_and_boolean_flag(self):
        f = FilterSet(search="python dev", work_mode="remote", experience_level="senior", visa_sponsorship=True)
        assert serialize(f, 2) == "search=python+dev&workMode=remote&experience=senior&visaSponsorship=true&page=2"

    @pytest.mark.parametrize("page", [1, 5])
    @pytest.mark.parametrize("filters", ROUND_TRIP_CASES)
    def test_parse_inverts_serialize(self, filters, page):
        parsed, parsed_page = parse_query(serialize(filters, page))
        assert parsed == filters
        assert parsed_page == page

    def test_round_trip_through_list_url(self):
        f = FilterSet(search="data & ml", location="ghana", date_posted="3months", visa_sponsorship=True)
        parsed, page = parse_query(list_url(f, 12))
        assert parsed == f
        assert page == 12

    def test_parse_drops_unknown_keys_and_values(self):
        f, page = parse_query("?workMode=flying&utm_source=mail&experience=senior&page=abc#top")
        assert f.work_mode == ""
        assert f.experience_level == "senior"
        assert page == 1

    def test_parse_negative_page_falls_back(self):
        _, page = parse_query("page=-4")
        assert page == 1

    def test_list_url(self):
        assert list_url(FilterSet()) == "/jobs"
        assert list_url(FilterSet(location="kenya"), 2) == "/jobs?location=kenya&page=2"


class TestMemoryHistory:
    def test_push_truncates_forward_entries(self):
        h = MemoryHistory("/a")
        h.push("/b")
        h.push("/c")
        h.back()
        h.push("/d")
        assert h.current == "/d"
        assert h.forward() is None
        assert h.length == 3

    def test_back_and_forward_notify(self):
        h = MemoryHistory("/a")
        seen = []
        h.on_navigate(seen.append)
        h.push("/b")
        assert seen == []
        assert h.back() == "/a"
        assert h.forward() == "/b"
        assert seen == ["/a", "/b"]
        assert MemoryHistory("/x").back() is None


class TestURLSynchronizer:
    def test_seed_and_edit_rewrites_url_in_place(self):
        """Scenario: land on a shared URL, type a search, URL follows without a new entry."""
        history = MemoryHistory("/jobs?workMode=remote&experience=senior&page=3")
        store = FilterStateStore()
        sync = URLSynchronizer(store, history)

        sync.seed()
        assert store.filters.work_mode == "remote"
        assert store.filters.experience_level == "senior"
        assert store.page == 3

        store.update(search="python")

        assert store.page == 1
        assert history.current == "/jobs?search=python&workMode=remote&experience=senior"
        assert history.length == 1

    def test_navigation_applies_without_write_back(self):
        history = MemoryHistory("/jobs")
        store = FilterStateStore()
        sync = URLSynchronizer(store, history)
        sync.seed()

        history.go("/jobs?workMode=remote")
        history.go("/jobs?workMode=hybrid&page=2")
        assert store.filters.work_mode == "hybrid"
        assert store.page == 2

        history.back()

        assert store.filters.work_mode == "remote"
        assert store.page == 1
        assert history.current == "/jobs?workMode=remote"
        assert history.length == 3

    def test_non_list_urls_are_ignored(self):
        history = MemoryHistory("/jobs?workMode=remote")
        store = FilterStateStore()
        sync = URLSynchronizer(store, history)
        sync.seed()

        history.go("/jobs/abc-123")
        assert store.filters.work_mode == "remote"

        store.update(work_mode="hybrid")
        assert history.current == "/jobs/abc-123"

    def test_canonicalizes_messy_url_on_first_edit(self):
        history = MemoryHistory("/jobs?utm_source=x&workMode=flying")
        store = FilterStateStore()
        URLSynchronizer(store, history).seed()
        assert store.filters.is_empty()

        store.update(location="ghana")
        assert history.current == "/jobs?location=ghana"

    def test_detach_stops_url_updates(self):
        history = MemoryHistory("/jobs")
        store = FilterStateStore()
        sync = URLSynchronizer(store, history)
        sync.detach()
        store.update(search="go")
        assert history.current == "/jobs"
