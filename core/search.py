# core/search.py
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Protocol, Set

import httpx
from pydantic import BaseModel, ConfigDict, Field

from core.filters import EMPTY_FILTERS, FilterSet, FilterSnapshot, FilterStateStore
from core.latest import LatestWins
from core.state_machine import SearchPhase, advance
from jobs.job_cards import JobSummary, to_job_summaries
from jobs.jobs_api import JobsApiError
from settings import API_TIMEOUT_SECONDS, SEARCH_DEBOUNCE_SECONDS, SEARCH_SORT_BY, SEARCH_SORT_DIRECTION
from telemetry.logger import log_event

logger = logging.getLogger(__name__)


# -------------------------------------------------------------------
# Result shapes
# -------------------------------------------------------------------
class PaginationCursor(BaseModel):
    model_config = ConfigDict(frozen=True)

    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1)
    total_items: int = 0
    total_pages: int = 0
    first_item: Optional[int] = None
    last_item: Optional[int] = None

    @classmethod
    def from_api(cls, pagination: Dict[str, Any], *, page: int, page_size: int) -> "PaginationCursor":
        p = pagination if isinstance(pagination, dict) else {}
        return cls(
            page=max(1, int(p.get("current_page") or page)),
            page_size=max(1, int(p.get("per_page") or page_size)),
            total_items=max(0, int(p.get("total") or 0)),
            total_pages=max(0, int(p.get("last_page") or 0)),
            first_item=p.get("from"),
            last_item=p.get("to"),
        )


class SearchError(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    retryable: bool = True


class SearchResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    jobs: List[JobSummary] = Field(default_factory=list)
    cursor: PaginationCursor = Field(default_factory=PaginationCursor)
    filters: FilterSet = EMPTY_FILTERS
    loading: bool = False
    error: Optional[SearchError] = None
    seq: int = 0


def _friendly_error(error_code: str) -> str:
    mapping = {
        "TIMEOUT": "The job search took too long. Please try again.",
        "UPSTREAM": "The job service is having trouble right now. Try again in a moment.",
        "INTERNAL": "Something went wrong loading jobs. Please try again.",
    }
    return mapping.get(error_code, mapping["INTERNAL"])


def build_search_params(snapshot: FilterSnapshot) -> Dict[str, Any]:
    f = snapshot.filters
    return {
        "search": f.search.strip(),
        "country": f.location,
        "work_mode": f.work_mode,
        "experience_level": f.experience_level,
        "has_visa_sponsorship": True if f.visa_sponsorship else None,
        "date_posted": f.date_posted,
        "page": snapshot.page,
        "per_page": snapshot.page_size,
        "sort_by": SEARCH_SORT_BY,
        "sort_direction": SEARCH_SORT_DIRECTION,
    }


class SearchClient(Protocol):
    async def search_jobs(self, params: Dict[str, Any]) -> Dict[str, Any]: ...


ResultListener = Callable[[SearchResult], None]


# -------------------------------------------------------------------
# Orchestrator
# -------------------------------------------------------------------
class SearchOrchestrator:
    """
    Turns store changes into remote searches.

    Text edits are debounced; structured filter and page changes go out on the
    next loop tick. Every request carries a sequence number from a LatestWins
    gate and only the latest one may replace the result. Failures keep the last
    good jobs and surface an error; close() hard-cancels everything outstanding.

    Must be driven from inside a running asyncio loop.
    """

    def __init__(
        self,
        store: FilterStateStore,
        client: SearchClient,
        *,
        debounce_seconds: float = SEARCH_DEBOUNCE_SECONDS,
        timeout_seconds: float = API_TIMEOUT_SECONDS,
        initial: Optional[SearchResult] = None,
    ):
        self.store = store
        self.client = client
        self.debounce_seconds = debounce_seconds
        self.timeout_seconds = timeout_seconds
        self.view_id = uuid.uuid4().hex[:12]

        self._gate = LatestWins()
        self._phase = SearchPhase.IDLE
        self._result = initial or SearchResult(
            cursor=PaginationCursor(page=store.page, page_size=store.snapshot.page_size),
            filters=store.filters,
        )
        self._has_totals = initial is not None and initial.cursor.total_pages > 0
        self._debounce: Optional[asyncio.Task] = None
        self._inflight: Set[asyncio.Task] = set()
        self._listeners: List[ResultListener] = []
        self._closed = False
        self._unsubscribe = store.subscribe(self._on_store_change)

    # -----------------------
    # Read side
    # -----------------------
    @property
    def phase(self) -> SearchPhase:
        return self._phase

    @property
    def result(self) -> SearchResult:
        return self._result

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def latest_seq(self) -> int:
        return self._gate.latest

    def subscribe(self, listener: ResultListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # -----------------------
    # Commands
    # -----------------------
    def start(self) -> None:
        """Initial load for a freshly mounted view."""
        self._schedule(0.0)

    def retry(self) -> None:
        self._schedule(0.0)

    def go_to_page(self, page: int) -> int:
        """
        Clamp into [1, total_pages]; only the lower bound applies until a
        response has told us how many pages exist. Returns the page in force.
        """
        target = max(1, int(page))
        if self._has_totals:
            target = min(target, max(1, self._result.cursor.total_pages))
        if target != self.store.page:
            self.store.set_page(target)
        return self.store.page

    def close(self) -> None:
        """View teardown: nothing outstanding may touch the result afterwards."""
        if self._closed:
            return
        self._closed = True
        self._gate.close()
        self._unsubscribe()
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None
        for task in list(self._inflight):
            task.cancel()
        self._listeners.clear()

    async def wait_idle(self) -> None:
        """Wait until no debounce timer or request is outstanding."""
        while True:
            pending = [t for t in self._inflight if not t.done()]
            if self._debounce is not None and not self._debounce.done():
                pending.append(self._debounce)
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # -----------------------
    # Internals
    # -----------------------
    def _on_store_change(self, prev: FilterSnapshot, curr: FilterSnapshot) -> None:
        if self._closed:
            return
        if prev.filters != curr.filters:
            # totals belong to the previous filters
            self._has_totals = False
        text_changed = prev.filters.search != curr.filters.search
        self._schedule(self.debounce_seconds if text_changed else 0.0)

    def _set_phase(self, nxt: SearchPhase) -> None:
        self._phase = advance(self._phase, nxt)

    def _schedule(self, delay: float) -> None:
        if self._closed:
            return
        if self._phase == SearchPhase.IN_FLIGHT:
            # the outstanding request no longer matches the filters
            self._gate.invalidate()
        self._set_phase(SearchPhase.DEBOUNCING)
        if self._debounce is not None:
            self._debounce.cancel()
        self._debounce = asyncio.get_running_loop().create_task(self._fire_after(delay))

    async def _fire_after(self, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        if self._debounce is asyncio.current_task():
            self._debounce = None
        if not self._closed:
            self._issue()

    def _issue(self) -> None:
        snapshot = self.store.snapshot
        seq = self._gate.issue()
        self._set_phase(SearchPhase.IN_FLIGHT)
        self._publish(self._result.model_copy(update={"loading": True}))

        task = asyncio.get_running_loop().create_task(self._run(seq, snapshot))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

        log_event(
            "search_issued",
            {"seq": seq, "page": snapshot.page, "active": snapshot.filters.active_fields()},
            view_id=self.view_id,
        )

    async def _run(self, seq: int, snapshot: FilterSnapshot) -> None:
        params = build_search_params(snapshot)
        try:
            data = await asyncio.wait_for(self.client.search_jobs(params), timeout=self.timeout_seconds)
            jobs = to_job_summaries(data.get("jobs"))
            cursor = PaginationCursor.from_api(
                data.get("pagination") or {}, page=snapshot.page, page_size=snapshot.page_size
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            self._fail(seq, "TIMEOUT", retryable=True)
            return
        except (JobsApiError, httpx.HTTPError) as e:
            retryable = e.retryable if isinstance(e, JobsApiError) else True
            logger.warning("search %s failed: %s", seq, e)
            self._fail(seq, "UPSTREAM", retryable=retryable)
            return
        except Exception:
            logger.exception("search %s crashed", seq)
            self._fail(seq, "INTERNAL", retryable=True)
            return

        if not self._gate.is_current(seq):
            self._discard(seq, "superseded")
            return

        self._has_totals = cursor.total_pages > 0
        self._set_phase(SearchPhase.SETTLED)
        self._publish(
            SearchResult(jobs=jobs, cursor=cursor, filters=snapshot.filters, loading=False, error=None, seq=seq)
        )
        log_event(
            "search_settled",
            {"seq": seq, "jobs_count": len(jobs), "total": cursor.total_items, "page": cursor.page},
            view_id=self.view_id,
        )

    def _fail(self, seq: int, code: str, *, retryable: bool) -> None:
        if not self._gate.is_current(seq):
            self._discard(seq, f"failed_{code.lower()}")
            return
        self._set_phase(SearchPhase.ERRORED)
        # last good jobs and cursor stay on screen
        self._publish(
            self._result.model_copy(
                update={
                    "loading": False,
                    "error": SearchError(code=code, message=_friendly_error(code), retryable=retryable),
                }
            )
        )
        log_event("search_failed", {"seq": seq, "error_code": code}, view_id=self.view_id)

    def _discard(self, seq: int, reason: str) -> None:
        logger.debug("discarding search %s (%s), latest is %s", seq, reason, self._gate.latest)
        if not self._closed:
            log_event("search_discarded", {"seq": seq, "latest": self._gate.latest, "reason": reason}, view_id=self.view_id)

    def _publish(self, result: SearchResult) -> None:
        self._result = result
        for listener in list(self._listeners):
            listener(result)
