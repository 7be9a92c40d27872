# core/url_sync.py
from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit

from core.filters import EMPTY_FILTERS, FilterSet, FilterSnapshot, FilterStateStore, equals, lenient_filters
from settings import LIST_PATH

logger = logging.getLogger(__name__)

# -------------------------------------------------------------------
# URL contract: query key <-> FilterSet field
# -------------------------------------------------------------------
URL_KEYS = (
    ("search", "search"),
    ("location", "location"),
    ("workMode", "work_mode"),
    ("experience", "experience_level"),
    ("visaSponsorship", "visa_sponsorship"),
    ("datePosted", "date_posted"),
)
_FIELD_BY_KEY = dict(URL_KEYS)


def serialize(filters: FilterSet, page: int = 1) -> str:
    """Query string without the leading '?'. Empty fields and page 1 are omitted."""
    pairs: List[Tuple[str, str]] = []
    for key, field in URL_KEYS:
        value = getattr(filters, field)
        if value == getattr(EMPTY_FILTERS, field):
            continue
        pairs.append((key, "true" if value is True else str(value)))
    if int(page) > 1:
        pairs.append(("page", str(int(page))))
    return urlencode(pairs)


def parse_query(query: str) -> Tuple[FilterSet, int]:
    """
    Inverse of serialize. Unknown keys and values that fail validation are
    dropped silently; an unusable page falls back to 1.
    """
    q = (query or "").strip()
    if "?" in q:
        q = q.split("?", 1)[1]
    q = q.split("#", 1)[0]

    raw = {}
    page = 1
    for key, value in parse_qsl(q, keep_blank_values=True):
        if key == "page":
            try:
                page = max(1, int(value))
            except ValueError:
                page = 1
            continue
        field = _FIELD_BY_KEY.get(key)
        if field is None:
            logger.debug("ignoring unknown url parameter %r", key)
            continue
        raw[field] = value
    return lenient_filters(raw), page


def list_url(filters: FilterSet, page: int = 1, path: str = LIST_PATH) -> str:
    query = serialize(filters, page)
    return f"{path}?{query}" if query else path


# -------------------------------------------------------------------
# History
# -------------------------------------------------------------------
NavigationListener = Callable[[str], None]


class MemoryHistory:
    """
    Session history with browser semantics: push truncates forward entries,
    replace rewrites the current one, back/forward notify listeners the way a
    popstate event would.
    """

    def __init__(self, initial_url: str = LIST_PATH):
        self._entries: List[str] = [initial_url]
        self._index = 0
        self._listeners: List[NavigationListener] = []

    @property
    def current(self) -> str:
        return self._entries[self._index]

    @property
    def length(self) -> int:
        return len(self._entries)

    def on_navigate(self, listener: NavigationListener) -> None:
        self._listeners.append(listener)

    def push(self, url: str) -> None:
        del self._entries[self._index + 1:]
        self._entries.append(url)
        self._index += 1

    def replace(self, url: str) -> None:
        self._entries[self._index] = url

    def back(self) -> Optional[str]:
        if self._index == 0:
            return None
        self._index -= 1
        self._emit()
        return self.current

    def forward(self) -> Optional[str]:
        if self._index >= len(self._entries) - 1:
            return None
        self._index += 1
        self._emit()
        return self.current

    def go(self, url: str) -> None:
        """Deep link / address bar entry: push and notify."""
        self.push(url)
        self._emit()

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self.current)


class URLSynchronizer:
    """Keeps the store and the address bar in step, in both directions."""

    def __init__(self, store: FilterStateStore, history: MemoryHistory, path: str = LIST_PATH):
        self.store = store
        self.history = history
        self.path = path
        self._applying_navigation = False
        self._unsubscribe = store.subscribe(self._on_store_change)
        history.on_navigate(self.on_navigate)

    def seed(self) -> FilterSet:
        """Initial page load: the URL is the source of truth."""
        self._apply_url(self.history.current)
        return self.store.filters

    def is_list_url(self, url: str) -> bool:
        return urlsplit(url).path.rstrip("/") == self.path.rstrip("/")

    def on_navigate(self, url: str) -> None:
        if not self.is_list_url(url):
            return
        self._apply_url(url)

    def _apply_url(self, url: str) -> None:
        filters, page = parse_query(urlsplit(url).query)
        target = FilterSnapshot(filters=filters, page=page, page_size=self.store.snapshot.page_size)
        if equals(target, self.store.snapshot):
            return
        self._applying_navigation = True
        try:
            self.store.load(filters, page)
        finally:
            self._applying_navigation = False

    def _on_store_change(self, prev: FilterSnapshot, curr: FilterSnapshot) -> None:
        if self._applying_navigation:
            return
        if not self.is_list_url(self.history.current):
            return
        url = list_url(curr.filters, curr.page, self.path)
        if url != self.history.current:
            self.history.replace(url)

    def detach(self) -> None:
        self._unsubscribe()
