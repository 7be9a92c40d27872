# core/filters.py
from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from settings import DEFAULT_PAGE_SIZE

# -------------------------------------------------------------------
# Vocabularies (canonical empty value is always "")
# -------------------------------------------------------------------
WORK_MODES = (
    "remote",
    "hybrid",
    "on-site",
    "field-work",
    "travel-required",
    "project-based",
    "consultant",
    "volunteer",
    "internship",
)

EXPERIENCE_LEVELS = (
    "entry-level",
    "junior",
    "intermediate",
    "mid-level",
    "experienced",
    "senior",
    "lead",
    "executive",
    "fresh-graduate",
    "career-changer",
    "returning-professional",
    "diaspora-return",
)

DATE_POSTED = ("today", "week", "month", "3months")

MAX_SEARCH_LENGTH = 200
MAX_LOCATION_LENGTH = 64

FILTER_FIELDS = (
    "search",
    "location",
    "work_mode",
    "experience_level",
    "visa_sponsorship",
    "date_posted",
)


class FilterValidationError(ValueError):
    """Raised when a programmatic update carries a value outside the vocabularies."""


def _pick(value: str, allowed: tuple, field: str) -> str:
    v = (value or "").strip().lower()
    if v and v not in allowed:
        raise ValueError(f"unknown {field} '{value}'")
    return v


class FilterSet(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    search: str = ""
    location: str = ""
    work_mode: str = Field(default="", alias="workMode")
    experience_level: str = Field(default="", alias="experienceLevel")
    visa_sponsorship: bool = Field(default=False, alias="visaSponsorship")
    date_posted: str = Field(default="", alias="datePosted")

    @field_validator("search", mode="before")
    @classmethod
    def _search(cls, v: Any) -> str:
        s = "" if v is None else str(v)
        if len(s) > MAX_SEARCH_LENGTH:
            raise ValueError("search text too long")
        return s

    @field_validator("location", mode="before")
    @classmethod
    def _location(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip().lower()
        if len(s) > MAX_LOCATION_LENGTH or any(not (ch.isalnum() or ch == "-") for ch in s):
            raise ValueError(f"invalid location '{v}'")
        return s

    @field_validator("work_mode", mode="before")
    @classmethod
    def _work_mode(cls, v: Any) -> str:
        return _pick("" if v is None else str(v), WORK_MODES, "work mode")

    @field_validator("experience_level", mode="before")
    @classmethod
    def _experience(cls, v: Any) -> str:
        return _pick("" if v is None else str(v), EXPERIENCE_LEVELS, "experience level")

    @field_validator("date_posted", mode="before")
    @classmethod
    def _date_posted(cls, v: Any) -> str:
        return _pick("" if v is None else str(v), DATE_POSTED, "date posted")

    @field_validator("visa_sponsorship", mode="before")
    @classmethod
    def _visa(cls, v: Any) -> bool:
        if v is None or v == "":
            return False
        if isinstance(v, bool):
            return v
        s = str(v).strip().lower()
        if s in ("true", "1", "yes"):
            return True
        if s in ("false", "0", "no"):
            return False
        raise ValueError(f"invalid visa sponsorship flag '{v}'")

    def is_empty(self) -> bool:
        return self == EMPTY_FILTERS

    def active_fields(self) -> List[str]:
        return [f for f in FILTER_FIELDS if getattr(self, f) != getattr(EMPTY_FILTERS, f)]


EMPTY_FILTERS = FilterSet()


class FilterSnapshot(BaseModel):
    """What the store owns: the filters plus the client-authoritative cursor inputs."""

    model_config = ConfigDict(frozen=True)

    filters: FilterSet = EMPTY_FILTERS
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=DEFAULT_PAGE_SIZE, ge=1)


def equals(a: Optional[BaseModel], b: Optional[BaseModel]) -> bool:
    """Field-wise comparison of two FilterSets (or two snapshots)."""
    if a is None or b is None:
        return a is b
    return type(a) is type(b) and a.model_dump() == b.model_dump()


def lenient_filters(raw: Mapping[str, Any]) -> FilterSet:
    """
    Build a FilterSet keeping only the fields whose values validate.
    Unknown values are dropped to their canonical empty value.
    """
    kept: Dict[str, Any] = {}
    for name, value in raw.items():
        if name not in FILTER_FIELDS:
            continue
        try:
            FilterSet(**{name: value})
        except ValidationError:
            continue
        kept[name] = value
    return FilterSet(**kept)


Listener = Callable[[FilterSnapshot, FilterSnapshot], None]


class FilterStateStore:
    """
    Single writer for the active filters and page.

    Snapshots are immutable; every mutation produces a new one and notifies
    subscribers with (previous, current) only when something actually changed.
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE):
        self._snapshot = FilterSnapshot(page_size=page_size)
        self._listeners: List[Listener] = []

    @property
    def snapshot(self) -> FilterSnapshot:
        return self._snapshot

    @property
    def filters(self) -> FilterSet:
        return self._snapshot.filters

    @property
    def page(self) -> int:
        return self._snapshot.page

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def initialize(self, url_query: str) -> FilterSet:
        # local import: url_sync depends on this module
        from core.url_sync import parse_query

        filters, page = parse_query(url_query)
        self.load(filters, page)
        return self.filters

    def load(self, filters: FilterSet, page: int = 1) -> FilterSnapshot:
        """Replace filters and page wholesale (URL seeding and navigation)."""
        nxt = FilterSnapshot(filters=filters, page=max(1, int(page)), page_size=self._snapshot.page_size)
        self._commit(nxt)
        return self._snapshot

    def update(self, partial: Optional[Mapping[str, Any]] = None, **fields: Any) -> FilterSet:
        """
        Merge a partial change into the current snapshot.

        Any filter field change resets the page to 1, even when the same
        partial also names a page.
        """
        patch: Dict[str, Any] = dict(partial or {})
        patch.update(fields)
        page = patch.pop("page", None)

        current = self._snapshot.filters.model_dump()
        merged = dict(current)
        for key, value in patch.items():
            name = _field_name(key)
            if name is None:
                raise FilterValidationError(f"unknown filter '{key}'")
            merged[name] = value

        try:
            filters = FilterSet(**merged)
        except ValidationError as e:
            raise FilterValidationError(str(e)) from e

        if not equals(filters, self._snapshot.filters):
            new_page = 1
        elif page is not None:
            new_page = int(page)
            if new_page < 1:
                raise FilterValidationError(f"page must be >= 1, got {page}")
        else:
            new_page = self._snapshot.page

        self._commit(self._snapshot.model_copy(update={"filters": filters, "page": new_page}))
        return self.filters

    def set_page(self, page: int) -> FilterSnapshot:
        self.update(page=page)
        return self._snapshot

    def reset(self) -> FilterSet:
        self._commit(self._snapshot.model_copy(update={"filters": EMPTY_FILTERS, "page": 1}))
        return self.filters

    def _commit(self, nxt: FilterSnapshot) -> None:
        prev = self._snapshot
        if equals(prev, nxt):
            return
        self._snapshot = nxt
        for listener in list(self._listeners):
            listener(prev, nxt)


_ALIASES = {
    "workMode": "work_mode",
    "experienceLevel": "experience_level",
    "experience": "experience_level",
    "visaSponsorship": "visa_sponsorship",
    "datePosted": "date_posted",
}


def _field_name(key: str) -> Optional[str]:
    if key in FILTER_FIELDS:
        return key
    return _ALIASES.get(key)
