# jobs/geolocation.py
from __future__ import annotations

import asyncio
import logging
import re
from typing import Any, Dict, List, Optional, Protocol

import httpx

from memory.models import GeolocationSnapshot
from settings import (
    GEO_CACHE_TTL_SECONDS,
    GEO_EDGE_URL,
    GEO_FALLBACK_ENDPOINTS,
    GEO_LOOKUP_TIMEOUT_SECONDS,
)
from telemetry.logger import log_event

logger = logging.getLogger(__name__)

# Country name -> the job API's country slug.
COUNTRY_SLUGS: Dict[str, str] = {
    "Ghana": "ghana",
    "Nigeria": "nigeria",
    "Kenya": "kenya",
    "South Africa": "south-africa",
    "United States": "united-states",
    "United Kingdom": "united-kingdom",
    "Canada": "canada",
    "France": "france",
    "Germany": "germany",
    "Australia": "australia",
    "Brazil": "brazil",
    "India": "india",
    "China": "china",
    "Japan": "japan",
    "South Korea": "south-korea",
    "Singapore": "singapore",
    "Malaysia": "malaysia",
    "Thailand": "thailand",
    "Philippines": "philippines",
    "Indonesia": "indonesia",
    "Vietnam": "vietnam",
    "Egypt": "egypt",
    "Morocco": "morocco",
    "Algeria": "algeria",
    "Tunisia": "tunisia",
    "Libya": "libya",
    "Sudan": "sudan",
    "Ethiopia": "ethiopia",
    "Tanzania": "tanzania",
    "Uganda": "uganda",
    "Rwanda": "rwanda",
    "Botswana": "botswana",
    "Namibia": "namibia",
    "Zambia": "zambia",
    "Zimbabwe": "zimbabwe",
    "Senegal": "senegal",
    "Ivory Coast": "ivory-coast",
    "Sierra Leone": "sierra-leone",
    "Liberia": "liberia",
    "Guinea": "guinea",
    "Mali": "mali",
    "Burkina Faso": "burkina-faso",
    "Niger": "niger",
    "Chad": "chad",
    "Cameroon": "cameroon",
    "Democratic Republic of the Congo": "democratic-republic-of-congo",
    "Republic of the Congo": "republic-of-congo",
    "Central African Republic": "central-african-republic",
    "Gabon": "gabon",
    "Equatorial Guinea": "equatorial-guinea",
    "Madagascar": "madagascar",
    "Mauritius": "mauritius",
    "Seychelles": "seychelles",
    "Comoros": "comoros",
}

# ISO code -> country name, for providers (and edge headers) that only send the code.
COUNTRY_NAMES_BY_CODE: Dict[str, str] = {
    "GH": "Ghana", "NG": "Nigeria", "KE": "Kenya", "ZA": "South Africa",
    "US": "United States", "GB": "United Kingdom", "CA": "Canada", "FR": "France",
    "DE": "Germany", "AU": "Australia", "BR": "Brazil", "IN": "India", "CN": "China",
    "JP": "Japan", "KR": "South Korea", "SG": "Singapore", "MY": "Malaysia",
    "TH": "Thailand", "PH": "Philippines", "ID": "Indonesia", "VN": "Vietnam",
    "EG": "Egypt", "MA": "Morocco", "DZ": "Algeria", "TN": "Tunisia", "LY": "Libya",
    "SD": "Sudan", "ET": "Ethiopia", "TZ": "Tanzania", "UG": "Uganda", "RW": "Rwanda",
    "BW": "Botswana", "NA": "Namibia", "ZM": "Zambia", "ZW": "Zimbabwe", "SN": "Senegal",
    "CI": "Ivory Coast", "SL": "Sierra Leone", "LR": "Liberia", "GN": "Guinea",
    "ML": "Mali", "BF": "Burkina Faso", "NE": "Niger", "TD": "Chad", "CM": "Cameroon",
    "CD": "Democratic Republic of the Congo", "CG": "Republic of the Congo",
    "CF": "Central African Republic", "GA": "Gabon", "GQ": "Equatorial Guinea",
    "MG": "Madagascar", "MU": "Mauritius", "SC": "Seychelles", "KM": "Comoros",
}

_CODE_RE = re.compile(r"^[A-Za-z]{2}$")


def _s(x: Any) -> str:
    return str(x).strip() if x is not None else ""


def normalize_location_data(data: Any, endpoint: str) -> Optional[Dict[str, str]]:
    """
    Providers disagree on field names:
      - ipapi.co:   country_name / country_code / region
      - ipinfo.io:  country (ISO code only) / region
      - ip-api.com: country / countryCode / regionName (+ status)
      - edge route: already normalized
    """
    if not isinstance(data, dict):
        return None

    if "ipapi.co" in endpoint:
        out = {
            "country": _s(data.get("country_name")),
            "countryCode": _s(data.get("country_code")),
            "region": _s(data.get("region")),
            "city": _s(data.get("city")),
            "timezone": _s(data.get("timezone")),
        }
    elif "ipinfo.io" in endpoint:
        code = _s(data.get("country"))
        out = {
            "country": COUNTRY_NAMES_BY_CODE.get(code.upper(), code),
            "countryCode": code,
            "region": _s(data.get("region")),
            "city": _s(data.get("city")),
            "timezone": _s(data.get("timezone")),
        }
    elif "ip-api.com" in endpoint:
        if data.get("status") not in (None, "success"):
            return None
        out = {
            "country": _s(data.get("country")),
            "countryCode": _s(data.get("countryCode")),
            "region": _s(data.get("regionName")),
            "city": _s(data.get("city")),
            "timezone": _s(data.get("timezone")),
        }
    else:
        out = {
            "country": _s(data.get("country")),
            "countryCode": _s(data.get("countryCode")),
            "region": _s(data.get("region")),
            "city": _s(data.get("city")),
            "timezone": _s(data.get("timezone")),
        }

    if not out["country"] and not out["countryCode"]:
        return None
    if out["countryCode"] and not _CODE_RE.match(out["countryCode"]):
        out["countryCode"] = ""
    out["countryCode"] = out["countryCode"].upper()
    if _CODE_RE.match(out["country"]):
        # edge headers carry the code in both fields
        out["country"] = COUNTRY_NAMES_BY_CODE.get(out["country"].upper(), out["country"])
    return out


def country_for_filtering(snapshot: Optional[GeolocationSnapshot]) -> Optional[str]:
    """Map a snapshot to the job API's country slug, or None when unsupported."""
    if snapshot is None or not snapshot.is_usable():
        return None
    name = snapshot.country or COUNTRY_NAMES_BY_CODE.get(snapshot.country_code, "")
    return COUNTRY_SLUGS.get(name)


class SnapshotStore(Protocol):
    async def get(self) -> Optional[GeolocationSnapshot]: ...
    async def put(self, snapshot: GeolocationSnapshot) -> None: ...
    async def clear(self) -> None: ...


class GeolocationResolver:
    """
    Best-effort country suggestion.

    Cache first; on a miss, one edge lookup, then each fallback endpoint once,
    in order. Nothing here raises: every failure ends in None and a log line.
    """

    def __init__(
        self,
        store: SnapshotStore,
        *,
        edge_url: Optional[str] = GEO_EDGE_URL,
        fallback_endpoints: Optional[List[str]] = None,
        timeout_seconds: float = GEO_LOOKUP_TIMEOUT_SECONDS,
        ttl_seconds: int = GEO_CACHE_TTL_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.store = store
        self.edge_url = edge_url
        self.fallback_endpoints = list(GEO_FALLBACK_ENDPOINTS if fallback_endpoints is None else fallback_endpoints)
        self.timeout_seconds = timeout_seconds
        self.ttl_seconds = ttl_seconds
        self._transport = transport
        self._inflight: Optional[asyncio.Task] = None
        self._snapshot: Optional[GeolocationSnapshot] = None
        self._attempts = 0
        self._closed = False

    @property
    def snapshot(self) -> Optional[GeolocationSnapshot]:
        return self._snapshot

    async def resolve(self) -> Optional[GeolocationSnapshot]:
        """Concurrent callers share one lookup."""
        if self._closed:
            return None
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.get_running_loop().create_task(self._resolve())
        return await asyncio.shield(self._inflight)

    def close(self) -> None:
        """Teardown: abandon an outstanding lookup and refuse new ones."""
        self._closed = True
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        self._inflight = None

    async def refetch(self) -> Optional[GeolocationSnapshot]:
        try:
            await self.store.clear()
        except Exception as e:
            logger.warning("geolocation cache clear failed: %s", e)
        self._snapshot = None
        if self._inflight is not None and not self._inflight.done():
            await asyncio.gather(self._inflight, return_exceptions=True)
        self._inflight = None
        return await self.resolve()

    async def _resolve(self) -> Optional[GeolocationSnapshot]:
        try:
            cached = await self._cached()
            if cached is not None:
                self._snapshot = cached
                return cached

            snapshot = await self._lookup()
            if snapshot is None:
                log_event("geo_unavailable", {"endpoints_tried": self._attempts})
                return None

            self._snapshot = snapshot
            try:
                await self.store.put(snapshot)
            except Exception as e:
                logger.warning("geolocation cache write failed: %s", e)
            log_event("geo_resolved", {"source": snapshot.source, "country_code": snapshot.country_code})
            return snapshot
        except Exception:
            logger.exception("geolocation resolve crashed")
            return None

    async def _cached(self) -> Optional[GeolocationSnapshot]:
        try:
            cached = await self.store.get()
        except Exception as e:
            logger.warning("geolocation cache read failed: %s", e)
            return None
        if cached is None:
            return None
        if cached.is_expired() or not cached.is_usable():
            try:
                await self.store.clear()
            except Exception as e:
                logger.warning("geolocation cache clear failed: %s", e)
            return None
        return cached

    async def _lookup(self) -> Optional[GeolocationSnapshot]:
        self._attempts = 0
        endpoints: List[str] = ([self.edge_url] if self.edge_url else []) + self.fallback_endpoints
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as http:
            for endpoint in endpoints:
                self._attempts += 1
                data = await self._fetch(http, endpoint)
                if data is None:
                    continue
                source = "edge" if endpoint == self.edge_url else httpx.URL(endpoint).host
                return GeolocationSnapshot(**data, source=source, ttl_seconds=self.ttl_seconds)
        return None

    async def _fetch(self, http: httpx.AsyncClient, endpoint: str) -> Optional[Dict[str, str]]:
        try:
            resp = await http.get(endpoint, headers={"Accept": "application/json"})
            if resp.status_code >= 400:
                logger.info("geolocation %s answered HTTP %s", endpoint, resp.status_code)
                return None
            return normalize_location_data(resp.json(), endpoint)
        except (httpx.HTTPError, ValueError) as e:
            logger.info("geolocation %s failed: %s", endpoint, e)
            return None
