# jobs/jobs_api.py
from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Callable, Dict, Optional

import httpx

from settings import API_TIMEOUT_SECONDS, JOBS_API_URL, JOBS_API_VERSION

logger = logging.getLogger(__name__)

SAVED_JOBS_PATH = "/saved-jobs"
JOBS_PATH = "/jobs"


class JobsApiError(Exception):
    def __init__(self, message: str, status: Optional[int] = None, errors: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.errors = errors or {}

    @property
    def retryable(self) -> bool:
        return self.status is None or self.status == 429 or self.status >= 500


class AuthRequiredError(JobsApiError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status=401)


TokenProvider = Callable[[], Optional[str]]


def _safe_str(x: Any) -> str:
    return str(x).strip() if x is not None else ""


def _error_from_response(resp: httpx.Response) -> JobsApiError:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    message = _safe_str(body.get("message")) if isinstance(body, dict) else ""
    errors = body.get("errors") if isinstance(body, dict) else None
    if resp.status_code == 401:
        return AuthRequiredError(message or "Authentication required")
    return JobsApiError(message or f"HTTP {resp.status_code}", status=resp.status_code, errors=errors)


async def _request_with_backoff(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    tries: int = 3,
    base_delay: float = 1.0,
    **kwargs: Any,
) -> httpx.Response:
    delay = base_delay
    for attempt in range(tries):
        resp = await client.request(method, url, **kwargs)

        if resp.status_code != 429:
            return resp

        retry_after = resp.headers.get("Retry-After")
        if retry_after:
            try:
                wait_s = float(retry_after)
            except ValueError:
                wait_s = delay + random.uniform(0, 0.5)
        else:
            wait_s = delay + random.uniform(0, 0.5)

        logger.debug("jobs api 429 on %s %s, sleeping %.1fs (attempt %d/%d)", method, url, wait_s, attempt + 1, tries)
        await asyncio.sleep(wait_s)
        delay *= 2

    raise JobsApiError("Job API rate-limited (429) after retries", status=429)


class JobsApiClient:
    """
    Thin async wrapper over the job API.

    Responses come wrapped in {success, message, data}; the client returns
    `data` and raises JobsApiError (AuthRequiredError for 401) otherwise.
    """

    def __init__(
        self,
        base_url: str = JOBS_API_URL,
        *,
        version: str = JOBS_API_VERSION,
        token_provider: Optional[TokenProvider] = None,
        timeout: float = API_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        backoff_tries: int = 3,
    ):
        self.base_url = f"{base_url.rstrip('/')}/api/{version}"
        self._token_provider = token_provider
        self._backoff_tries = backoff_tries
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Accept": "application/json", "Content-Type": "application/json"},
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "JobsApiClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    def _auth_headers(self) -> Dict[str, str]:
        token = self._token_provider() if self._token_provider else None
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def _call(self, method: str, path: str, *, auth: bool = False, **kwargs: Any) -> Any:
        headers = self._auth_headers()
        if auth and not headers:
            raise AuthRequiredError()
        resp = await _request_with_backoff(
            self._http, method, path, tries=self._backoff_tries, headers=headers, **kwargs
        )
        if resp.status_code >= 400:
            raise _error_from_response(resp)
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            body = resp.json()
        except ValueError as e:
            raise JobsApiError(f"Non-JSON response from {path}", status=resp.status_code) from e
        if isinstance(body, dict) and body.get("success") is False:
            raise JobsApiError(_safe_str(body.get("message")) or "Request failed", status=resp.status_code)
        return body.get("data") if isinstance(body, dict) and "data" in body else body

    # -----------------------
    # Job search
    # -----------------------
    async def search_jobs(self, params: Dict[str, Any]) -> Dict[str, Any]:
        clean = {k: v for k, v in params.items() if v is not None and v != "" and v is not False}
        data = await self._call("GET", JOBS_PATH, params=clean)
        if not isinstance(data, dict):
            raise JobsApiError("Malformed search response")
        return data

    # -----------------------
    # Saved jobs
    # -----------------------
    async def list_saved_jobs(self, page: int = 1, per_page: int = 20) -> Dict[str, Any]:
        data = await self._call("GET", SAVED_JOBS_PATH, auth=True, params={"page": page, "per_page": per_page})
        if not isinstance(data, dict):
            raise JobsApiError("Malformed saved jobs response")
        return data

    async def save_job(self, job_listing_id: str) -> Dict[str, Any]:
        data = await self._call("POST", SAVED_JOBS_PATH, auth=True, json={"job_listing_id": job_listing_id})
        if not isinstance(data, dict) or not data.get("id"):
            raise JobsApiError("Saved job response missing id")
        return data

    async def unsave_job(self, saved_job_id: str) -> None:
        await self._call("DELETE", f"{SAVED_JOBS_PATH}/{saved_job_id}", auth=True)

    async def check_saved(self, job_listing_id: str) -> bool:
        data = await self._call("GET", f"{SAVED_JOBS_PATH}/check/{job_listing_id}", auth=True)
        return bool((data or {}).get("is_saved"))

    async def count_saved(self) -> int:
        data = await self._call("GET", f"{SAVED_JOBS_PATH}/count", auth=True)
        return int((data or {}).get("count") or 0)
