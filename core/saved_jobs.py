# core/saved_jobs.py
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol, Set

import httpx
from pydantic import BaseModel, ConfigDict

from core.auth_utils import LoginRedirector
from core.latest import LatestWins
from jobs.jobs_api import AuthRequiredError, JobsApiError
from settings import API_TIMEOUT_SECONDS, SAVED_JOBS_PAGE_SIZE
from telemetry.logger import log_event

logger = logging.getLogger(__name__)

# Hard stop for a misbehaving last_page value.
MAX_SAVED_PAGES = 50


class ToggleOutcome(str, Enum):
    SAVED = "saved"
    UNSAVED = "unsaved"
    IGNORED = "ignored"
    ROLLED_BACK = "rolled_back"
    AUTH_REQUIRED = "auth_required"


class Notification(BaseModel):
    model_config = ConfigDict(frozen=True)

    job_id: str
    level: str  # "error" | "info"
    message: str


Notifier = Callable[[Notification], None]


class SavedJobsClient(Protocol):
    async def list_saved_jobs(self, page: int = 1, per_page: int = 20) -> Dict[str, Any]: ...
    async def save_job(self, job_listing_id: str) -> Dict[str, Any]: ...
    async def unsave_job(self, saved_job_id: str) -> None: ...
    async def check_saved(self, job_listing_id: str) -> bool: ...
    async def count_saved(self) -> int: ...


def _saved_pairs(page_data: Dict[str, Any]) -> Dict[str, str]:
    """job listing id -> saved record id for one page of the saved collection."""
    out: Dict[str, str] = {}
    for rec in page_data.get("data") or []:
        if not isinstance(rec, dict):
            continue
        job = rec.get("job") if isinstance(rec.get("job"), dict) else {}
        job_id = str(job.get("id") or rec.get("job_listing_id") or "").strip()
        saved_id = str(rec.get("id") or "").strip()
        if job_id and saved_id:
            out[job_id] = saved_id
    return out


class SavedJobsReconciler:
    """
    Single writer for the saved-jobs index.

    Index entries map job id -> saved record id; an optimistic save holds None
    until the server hands back the record id. Every write made by an async
    operation is fenced by the auth epoch, so nothing lands after a logout.
    """

    def __init__(
        self,
        client: SavedJobsClient,
        *,
        notifier: Optional[Notifier] = None,
        redirector: Optional[LoginRedirector] = None,
        page_size: int = SAVED_JOBS_PAGE_SIZE,
        timeout_seconds: float = API_TIMEOUT_SECONDS,
    ):
        self.client = client
        self._notifier = notifier
        self._redirector = redirector or LoginRedirector()
        self.page_size = max(1, min(int(page_size), 100))
        self.timeout_seconds = timeout_seconds

        self._index: Dict[str, Optional[str]] = {}
        self._pending: Set[str] = set()
        self._authenticated = False
        self._epoch = LatestWins()
        self._epoch.issue()
        self._loads = LatestWins()
        self._loaded = False
        self._load_task: Optional[asyncio.Task] = None

    # -----------------------
    # Read side
    # -----------------------
    @property
    def authenticated(self) -> bool:
        return self._authenticated

    @property
    def loaded(self) -> bool:
        return self._loaded

    def is_saved(self, job_id: str) -> bool:
        return str(job_id) in self._index

    def is_pending(self, job_id: str) -> bool:
        return str(job_id) in self._pending

    def saved_job_ids(self) -> List[str]:
        return list(self._index)

    def saved_record_id(self, job_id: str) -> Optional[str]:
        return self._index.get(str(job_id))

    # -----------------------
    # Auth transitions
    # -----------------------
    def on_auth_changed(self, authenticated: bool) -> Optional[asyncio.Task]:
        """
        auth -> False clears the index before returning.
        auth -> True starts a full load and returns its task.
        """
        if not authenticated:
            self._authenticated = False
            self._epoch.issue()
            self._loads.invalidate()
            self._index = {}
            self._pending = set()
            self._loaded = False
            if self._load_task is not None:
                self._load_task.cancel()
                self._load_task = None
            return None

        self._authenticated = True
        self._epoch.issue()
        self._load_task = asyncio.get_running_loop().create_task(self.load())
        return self._load_task

    def close(self) -> None:
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
        self._load_task = None

    async def load(self) -> bool:
        """
        Rebuild the index from every page of the remote collection.
        Returns False when the load failed or was overtaken.
        """
        if not self._authenticated:
            return False
        epoch = self._epoch.latest
        seq = self._loads.issue()

        remote: Dict[str, str] = {}
        try:
            page = 1
            while page <= MAX_SAVED_PAGES:
                data = await asyncio.wait_for(
                    self.client.list_saved_jobs(page=page, per_page=self.page_size),
                    timeout=self.timeout_seconds,
                )
                remote.update(_saved_pairs(data))
                last_page = int(data.get("last_page") or 1)
                if page >= last_page:
                    break
                page += 1
        except AuthRequiredError:
            logger.info("saved jobs load rejected: session no longer valid")
            return False
        except (JobsApiError, httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.warning("saved jobs load failed: %s", e)
            return False

        if not (self._epoch.is_current(epoch) and self._loads.is_current(seq)):
            logger.debug("dropping saved jobs load %s (overtaken)", seq)
            return False

        # pending toggles keep their optimistic local state until they settle
        for job_id in self._pending:
            if job_id in self._index:
                remote.setdefault(job_id, self._index[job_id])
            else:
                remote.pop(job_id, None)
        self._index = dict(remote)
        self._loaded = True
        log_event("saved_jobs_loaded", {"count": len(self._index)})
        return True

    # -----------------------
    # Mutations
    # -----------------------
    async def toggle(self, job_id: str, *, return_to: Optional[str] = None) -> ToggleOutcome:
        job_id = str(job_id)
        if not self._authenticated:
            self._redirector.redirect(return_to)
            return ToggleOutcome.AUTH_REQUIRED
        if job_id in self._pending:
            return ToggleOutcome.IGNORED

        epoch = self._epoch.latest
        was_saved = job_id in self._index
        saved_id = self._index.get(job_id)

        # optimistic flip
        self._pending.add(job_id)
        if was_saved:
            self._index.pop(job_id, None)
        else:
            self._index[job_id] = None

        try:
            if was_saved:
                if saved_id is None:
                    raise JobsApiError("Saved record id unknown; reload required", status=409)
                await self._unsave(saved_id)
            else:
                rec = await asyncio.wait_for(self.client.save_job(job_id), timeout=self.timeout_seconds)
                saved_id = str(rec.get("id"))
        except AuthRequiredError:
            if self._epoch.is_current(epoch):
                self._revert(job_id, was_saved, saved_id)
            self._redirector.redirect(return_to)
            return ToggleOutcome.AUTH_REQUIRED
        except (JobsApiError, httpx.HTTPError, asyncio.TimeoutError) as e:
            if not self._epoch.is_current(epoch):
                return ToggleOutcome.IGNORED
            self._revert(job_id, was_saved, saved_id)
            logger.warning("saved job %s %s rejected: %s", job_id, "unsave" if was_saved else "save", e)
            self._notify(
                Notification(
                    job_id=job_id,
                    level="error",
                    message="Couldn't remove this job from your saved list." if was_saved
                    else "Couldn't save this job. Please try again.",
                )
            )
            log_event("saved_job_rolled_back", {"job_id": job_id, "action": "unsave" if was_saved else "save"})
            return ToggleOutcome.ROLLED_BACK
        except BaseException as e:
            # cancelled or crashed: the optimistic flip must not outlive the call
            if self._epoch.is_current(epoch):
                self._revert(job_id, was_saved, saved_id)
            if not isinstance(e, asyncio.CancelledError):
                logger.exception("saved job %s toggle crashed", job_id)
            raise
        finally:
            # a logout replaced the pending set; a later session may own this id now
            if self._epoch.is_current(epoch):
                self._pending.discard(job_id)

        if not self._epoch.is_current(epoch):
            return ToggleOutcome.IGNORED
        if was_saved:
            return ToggleOutcome.UNSAVED
        self._index[job_id] = saved_id
        return ToggleOutcome.SAVED

    async def _unsave(self, saved_id: str) -> None:
        try:
            await asyncio.wait_for(self.client.unsave_job(saved_id), timeout=self.timeout_seconds)
        except JobsApiError as e:
            # already gone remotely: the local unsave stands
            if e.status != 404:
                raise

    def _revert(self, job_id: str, was_saved: bool, saved_id: Optional[str]) -> None:
        if was_saved:
            self._index[job_id] = saved_id
        else:
            self._index.pop(job_id, None)

    def _notify(self, note: Notification) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier(note)
        except Exception:
            logger.exception("saved jobs notifier failed for %s", note.job_id)

    # -----------------------
    # Point reconciliation
    # -----------------------
    async def check(self, job_id: str) -> bool:
        """
        Reconcile one job against the existence-check endpoint (detail page).
        A remote save we have no record id for triggers a full reload.
        """
        job_id = str(job_id)
        if not self._authenticated or job_id in self._pending:
            return self.is_saved(job_id)
        epoch = self._epoch.latest
        try:
            remote_saved = await asyncio.wait_for(self.client.check_saved(job_id), timeout=self.timeout_seconds)
        except (JobsApiError, httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.info("saved check for %s failed: %s", job_id, e)
            return self.is_saved(job_id)

        if not self._epoch.is_current(epoch) or job_id in self._pending:
            return self.is_saved(job_id)
        if not remote_saved:
            self._index.pop(job_id, None)
        elif job_id not in self._index:
            await self.load()
        return self.is_saved(job_id)

    async def count(self) -> int:
        if not self._authenticated:
            return 0
        try:
            return await asyncio.wait_for(self.client.count_saved(), timeout=self.timeout_seconds)
        except (JobsApiError, httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.info("saved count failed: %s", e)
            return len(self._index)
