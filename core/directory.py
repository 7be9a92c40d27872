# core/directory.py
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import httpx

from core.auth_utils import AuthSession, LoginRedirector, PostLoginRedirect
from core.filters import FilterSet, FilterStateStore
from core.saved_jobs import Notification, SavedJobsReconciler, ToggleOutcome
from core.scroll import ScrollPositionMemento
from core.search import SearchOrchestrator, SearchResult
from core.state_machine import SearchPhase
from core.url_sync import MemoryHistory, URLSynchronizer
from jobs.geolocation import GeolocationResolver, SnapshotStore, country_for_filtering
from jobs.job_cards import to_job_cards
from jobs.jobs_api import JobsApiClient
from memory.geo_store import GeoSnapshotStore
from settings import API_TIMEOUT_SECONDS, DEFAULT_PAGE_SIZE, LIST_PATH, POST_LOGIN_PATH, SEARCH_DEBOUNCE_SECONDS
from telemetry.logger import log_event

logger = logging.getLogger(__name__)


class ApplyOutcome(str, Enum):
    OPENED = "opened"
    AUTH_REQUIRED = "auth_required"


class JobDirectory:
    """
    The surface the rendering layer talks to.

    Owns one FilterStateStore for the session and mounts a fresh
    SearchOrchestrator each time the list view is entered; leaving the list
    (detail page, login redirect, close) tears the orchestrator down.
    Saved jobs and geolocation run beside the search path and only annotate it.
    """

    def __init__(
        self,
        client: JobsApiClient,
        *,
        history: Optional[MemoryHistory] = None,
        geo_resolver: Optional[GeolocationResolver] = None,
        auth: Optional[AuthSession] = None,
        notifier: Optional[Callable[[Notification], None]] = None,
        on_scroll_restore: Optional[Callable[[int], None]] = None,
        open_url: Optional[Callable[[str], None]] = None,
        apply_location_suggestion: bool = True,
        debounce_seconds: float = SEARCH_DEBOUNCE_SECONDS,
        timeout_seconds: float = API_TIMEOUT_SECONDS,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.client = client
        self.history = history or MemoryHistory(LIST_PATH)
        self.store = FilterStateStore(page_size=page_size)
        self.url_sync = URLSynchronizer(self.store, self.history)
        self.auth = auth or AuthSession()
        self.redirector = LoginRedirector(navigate=self._navigate_away)
        self.saved = SavedJobsReconciler(
            client, notifier=self._on_notification, redirector=self.redirector, timeout_seconds=timeout_seconds
        )
        self.geo = geo_resolver
        self.memento = ScrollPositionMemento()
        self.notifications: List[Notification] = []
        self.restored_offset: Optional[int] = None
        self.opened_urls: List[str] = []

        self._notifier = notifier
        self._on_scroll_restore = on_scroll_restore
        self._open_url = open_url
        self._apply_location_suggestion = apply_location_suggestion
        self._debounce_seconds = debounce_seconds
        self._timeout_seconds = timeout_seconds

        self._orchestrator: Optional[SearchOrchestrator] = None
        self._last_settled: Optional[SearchResult] = None
        self._location_suggestion: Optional[str] = None
        self._geo_task: Optional[asyncio.Task] = None

        self.auth.on_change(self._on_auth_changed)
        # registered after url_sync: the store is already updated when we react
        self.history.on_navigate(self._on_navigate)

    @classmethod
    def create(
        cls,
        initial_url: str = LIST_PATH,
        *,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        geo_store: Optional[SnapshotStore] = None,
        geo_transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs: Any,
    ) -> "JobDirectory":
        """Production wiring: the API client reads its bearer token from the session."""
        auth = kwargs.pop("auth", None) or AuthSession()
        client_kwargs: Dict[str, Any] = {"token_provider": lambda: auth.token, "transport": transport}
        if base_url:
            client_kwargs["base_url"] = base_url
        client = JobsApiClient(**client_kwargs)
        geo = GeolocationResolver(geo_store or GeoSnapshotStore(), transport=geo_transport)
        return cls(client, history=MemoryHistory(initial_url), geo_resolver=geo, auth=auth, **kwargs)

    # -----------------------
    # Lifecycle
    # -----------------------
    def open(self) -> None:
        """First paint: seed from the URL, start search and geolocation side by side."""
        self.url_sync.seed()
        if self.url_sync.is_list_url(self.history.current):
            self._mount_list()
        if self.geo is not None and self._geo_task is None:
            self._geo_task = asyncio.get_running_loop().create_task(self._resolve_location())
        if self.auth.is_authenticated and not self.saved.loaded:
            self.saved.on_auth_changed(True)

    def close(self) -> None:
        self._unmount_list()
        self.saved.close()
        if self.geo is not None:
            self.geo.close()
        if self._geo_task is not None and not self._geo_task.done():
            self._geo_task.cancel()

    async def aclose(self) -> None:
        self.close()
        await self.client.aclose()

    async def wait_idle(self) -> None:
        """Let debounce timers, searches and the geolocation lookup finish."""
        if self._geo_task is not None:
            await asyncio.gather(self._geo_task, return_exceptions=True)
        if self._orchestrator is not None:
            await self._orchestrator.wait_idle()

    # -----------------------
    # Read side for rendering
    # -----------------------
    @property
    def filters(self) -> FilterSet:
        return self.store.filters

    @property
    def page(self) -> int:
        return self.store.page

    @property
    def result(self) -> Optional[SearchResult]:
        if self._orchestrator is not None:
            return self._orchestrator.result
        return self._last_settled

    @property
    def phase(self) -> Optional[SearchPhase]:
        return self._orchestrator.phase if self._orchestrator is not None else None

    @property
    def list_mounted(self) -> bool:
        return self._orchestrator is not None

    @property
    def location_suggestion(self) -> Optional[str]:
        return self._location_suggestion

    @property
    def cards(self) -> List[Dict[str, Any]]:
        result = self.result
        if result is None:
            return []
        return to_job_cards(result.jobs, is_saved=self.saved.is_saved, is_pending=self.saved.is_pending)

    # -----------------------
    # Commands
    # -----------------------
    def set_filter(self, partial: Optional[Dict[str, Any]] = None, **fields: Any) -> FilterSet:
        return self.store.update(partial, **fields)

    def clear_filters(self) -> FilterSet:
        return self.store.reset()

    def go_to_page(self, page: int) -> int:
        if self._orchestrator is not None:
            return self._orchestrator.go_to_page(page)
        return self.store.set_page(max(1, int(page))).page

    def retry(self) -> None:
        if self._orchestrator is not None:
            self._orchestrator.retry()

    async def toggle_saved(self, job_id: str) -> ToggleOutcome:
        return await self.saved.toggle(job_id, return_to=self.history.current)

    def apply(self, job_id: str) -> ApplyOutcome:
        """
        Open the posting's application page. Anonymous users are sent to log
        in first; the posting opens once complete_login() succeeds.
        """
        url = self._apply_url(str(job_id))
        if not self.auth.check_expiry():
            self.redirector.redirect_for_job(url)
            return ApplyOutcome.AUTH_REQUIRED
        self._open(url)
        log_event("job_apply_opened", {"job_id": str(job_id)})
        return ApplyOutcome.OPENED

    def complete_login(
        self, token: Optional[str], *, return_to: Optional[str] = None, default: str = POST_LOGIN_PATH
    ) -> PostLoginRedirect:
        if not self.set_access_token(token):
            raise ValueError("Access token is missing, unreadable or expired")
        redirect = self.redirector.after_login(return_to, default=default)
        if redirect.job_url:
            self._open(redirect.job_url)
        self.navigate(redirect.destination)
        return redirect

    def set_access_token(self, token: Optional[str]) -> bool:
        return self.auth.set_token(token)

    def logout(self) -> None:
        self.auth.clear()

    # -----------------------
    # Navigation
    # -----------------------
    def navigate(self, url: str) -> None:
        """Deep link or address-bar entry."""
        self.history.go(url)

    def back(self) -> Optional[str]:
        return self.history.back()

    def forward(self) -> Optional[str]:
        return self.history.forward()

    def open_detail(self, job_id: str, scroll_offset: int) -> str:
        self.memento.capture(self.history.current, scroll_offset)
        url = f"{LIST_PATH}/{job_id}"
        self._navigate_away(url)
        return url

    def _navigate_away(self, url: str) -> None:
        self.history.push(url)
        self._unmount_list()

    def _on_navigate(self, url: str) -> None:
        if not self.url_sync.is_list_url(url):
            self._unmount_list()
            return
        if self._orchestrator is None:
            self._mount_list()
        # an existing orchestrator already saw the store change

    def _mount_list(self) -> None:
        snapshot = self.store.snapshot
        seed = self._last_settled
        reusable = (
            seed is not None
            and seed.error is None
            and seed.filters == snapshot.filters
            and seed.cursor.page == snapshot.page
        )
        orchestrator = SearchOrchestrator(
            self.store,
            self.client,
            debounce_seconds=self._debounce_seconds,
            timeout_seconds=self._timeout_seconds,
            initial=seed if reusable else None,
        )
        orchestrator.subscribe(self._on_result)
        self._orchestrator = orchestrator
        self.restored_offset = None
        if not reusable:
            orchestrator.start()
        self._try_restore_scroll()

    def _unmount_list(self) -> None:
        if self._orchestrator is not None:
            self._orchestrator.close()
            self._orchestrator = None

    def _on_result(self, result: SearchResult) -> None:
        if not result.loading and result.error is None and result.seq > 0:
            self._last_settled = result
        if not result.loading:
            self._try_restore_scroll()

    def _try_restore_scroll(self) -> None:
        result = self.result
        loading = result is None or result.loading or (result.seq == 0 and not result.jobs)
        offset = self.memento.restore(self.history.current, loading=loading)
        if offset is None:
            return
        self.restored_offset = offset
        if self._on_scroll_restore is not None:
            self._on_scroll_restore(offset)

    # -----------------------
    # Side channels
    # -----------------------
    def _on_auth_changed(self, authenticated: bool) -> None:
        self.saved.on_auth_changed(authenticated)

    def _apply_url(self, job_id: str) -> str:
        result = self.result
        for job in result.jobs if result is not None else []:
            if job.id == job_id and job.apply_url:
                return job.apply_url
        # postings without an external link apply through their detail page
        return f"{LIST_PATH}/{job_id}"

    def _open(self, url: str) -> None:
        self.opened_urls.append(url)
        if self._open_url is not None:
            self._open_url(url)

    def _on_notification(self, note: Notification) -> None:
        self.notifications.append(note)
        if self._notifier is not None:
            self._notifier(note)

    async def _resolve_location(self) -> None:
        snapshot = await self.geo.resolve()
        slug = country_for_filtering(snapshot)
        self._location_suggestion = slug
        if not slug or not self._apply_location_suggestion:
            return
        # suggestion only: a location the user already chose always wins
        if self.store.filters.location == "" and self._orchestrator is not None:
            logger.info("pre-filling location from geolocation: %s", slug)
            self.store.update(location=slug)
