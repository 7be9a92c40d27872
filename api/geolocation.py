# api/geolocation.py
from __future__ import annotations

import logging
import math
from typing import Any, Optional

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.rate_limit import TokenBucketLimiter
from jobs.geolocation import normalize_location_data

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["geolocation"])

geo_limiter = TokenBucketLimiter(rate=30, per_seconds=60, capacity=30)  # 30/min per IP

UPSTREAM_TIMEOUT_SECONDS = 5.0
USER_AGENT = "JobDirectory/1.0"

# Checked in order; forwarding headers may list "client, proxy1, proxy2".
IP_HEADERS = (
    "x-real-ip",
    "x-forwarded-for",
    "x-client-ip",
    "cf-connecting-ip",
    "x-nf-client-connection-ip",
    "x-vercel-forwarded-for",
)
LOOPBACK = {"127.0.0.1", "::1"}


class GeolocationPayload(BaseModel):
    country: str
    countryCode: str
    region: str = ""
    city: str = ""
    timezone: str = ""
    source: str


# ----------------------------
# Helpers
# ----------------------------
def client_ip(request: Request) -> Optional[str]:
    for header in IP_HEADERS:
        value = request.headers.get(header)
        if not value:
            continue
        ip = value.split(",")[0].strip()
        if ip and ip not in LOOPBACK:
            return ip
    return None


def platform_geolocation(request: Request) -> Optional[GeolocationPayload]:
    """Edge platforms stamp the country on the request; no network needed."""
    h = request.headers
    if h.get("x-vercel-ip-country"):
        code = h["x-vercel-ip-country"]
        return GeolocationPayload(
            country=code,
            countryCode=code,
            region=h.get("x-vercel-ip-country-region", ""),
            city=h.get("x-vercel-ip-city", ""),
            timezone=h.get("x-vercel-ip-timezone", ""),
            source="vercel",
        )
    cf = h.get("cf-ipcountry")
    if cf and cf.upper() not in ("XX", "T1"):
        return GeolocationPayload(country=cf, countryCode=cf, source="cloudflare")
    return None


async def lookup_ip(ip: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> Optional[GeolocationPayload]:
    providers = (
        ("ipinfo", f"https://ipinfo.io/{ip}/json"),
        ("ip-api", f"http://ip-api.com/json/{ip}"),
    )
    async with httpx.AsyncClient(timeout=UPSTREAM_TIMEOUT_SECONDS, transport=transport) as http:
        for source, url in providers:
            try:
                resp = await http.get(url, headers={"Accept": "application/json", "User-Agent": USER_AGENT})
                if resp.status_code >= 400:
                    logger.warning("%s answered HTTP %s", source, resp.status_code)
                    continue
                data = normalize_location_data(resp.json(), url)
            except (httpx.HTTPError, ValueError) as e:
                logger.warning("%s lookup failed: %s", source, e)
                continue
            if data:
                return GeolocationPayload(**data, source=source)
    return None


# ----------------------------
# Routes
# ----------------------------
@router.get("/geolocation")
async def geolocation(request: Request) -> Any:
    """
    Answers with a payload or null; the browser treats null as "no suggestion".
    429 when one IP asks too often, 500 only if the route itself crashes.
    """
    try:
        platform = platform_geolocation(request)
        if platform is not None:
            return platform.model_dump()

        ip = client_ip(request)
        if not ip:
            logger.warning("could not determine client IP")
            return None

        if not geo_limiter.allow(f"geo:{ip}"):
            wait = math.ceil(geo_limiter.retry_after(f"geo:{ip}"))
            return JSONResponse(None, status_code=429, headers={"Retry-After": str(wait)})

        found = await lookup_ip(ip, transport=getattr(request.app.state, "geo_transport", None))
        if found is None:
            logger.warning("all geolocation providers failed for request")
            return None
        return found.model_dump()
    except Exception:
        logger.exception("geolocation route failed")
        return JSONResponse({"error": "Failed to detect location"}, status_code=500)
