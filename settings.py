# settings.py
import os
from dotenv import load_dotenv

load_dotenv()

# Job API
JOBS_API_URL = os.getenv("JOBS_API_URL", "http://localhost:8000").strip().rstrip("/")
JOBS_API_VERSION = os.getenv("JOBS_API_VERSION", "v1").strip()
API_TIMEOUT_SECONDS = float(os.getenv("API_TIMEOUT_SECONDS", "30"))

if not JOBS_API_URL:
    raise RuntimeError("Missing JOBS_API_URL")

# Search
SEARCH_DEBOUNCE_SECONDS = float(os.getenv("SEARCH_DEBOUNCE_SECONDS", "0.5"))
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))
SEARCH_SORT_BY = os.getenv("SEARCH_SORT_BY", "posted_at")
SEARCH_SORT_DIRECTION = os.getenv("SEARCH_SORT_DIRECTION", "desc")
LIST_PATH = "/jobs"

# Saved jobs (the API refuses pages larger than 100)
SAVED_JOBS_PAGE_SIZE = min(int(os.getenv("SAVED_JOBS_PAGE_SIZE", "100")), 100)
LOGIN_PATH = os.getenv("LOGIN_PATH", "/auth/login")
POST_LOGIN_PATH = os.getenv("POST_LOGIN_PATH", "/dashboard")

# Geolocation
GEO_CACHE_TTL_SECONDS = int(os.getenv("GEO_CACHE_TTL_SECONDS", str(24 * 60 * 60)))
GEO_EDGE_URL = os.getenv("GEO_EDGE_URL", "http://localhost:3000/api/geolocation")
GEO_FALLBACK_ENDPOINTS = [
    e.strip()
    for e in os.getenv(
        "GEO_FALLBACK_ENDPOINTS",
        "https://ipinfo.io/json,https://ipapi.co/json/,https://ip-api.com/json/",
    ).split(",")
    if e.strip()
]
GEO_LOOKUP_TIMEOUT_SECONDS = float(os.getenv("GEO_LOOKUP_TIMEOUT_SECONDS", "5"))
GEO_DATABASE_URL = os.getenv("GEO_DATABASE_URL", "sqlite+aiosqlite:///./geo.db")

# Telemetry
TELEMETRY_DB_PATH = os.getenv("TELEMETRY_DB_PATH", "telemetry.sqlite3")
DEBUG = os.getenv("DEBUG", "0").strip() == "1"
