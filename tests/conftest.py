"""
Global fixtures for the test suite.

- Environment is pinned BEFORE any project import so settings.py never picks
  up a developer's .env values.
- Telemetry writes go to a per-test sqlite file instead of the working dir.
"""

import os

import pytest

os.environ["JOBS_API_URL"] = "http://api.test"
os.environ["JOBS_API_VERSION"] = "v1"
os.environ["GEO_EDGE_URL"] = "http://edge.test/api/geolocation"
os.environ["GEO_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "0"


@pytest.fixture(autouse=True)
def isolate_telemetry(tmp_path, monkeypatch):
    """Every test gets its own telemetry database."""
    import telemetry.logger as telemetry_logger

    monkeypatch.setattr(telemetry_logger, "DB_PATH", str(tmp_path / "telemetry.sqlite3"))
    yield


@pytest.fixture
def api():
    from fakes import FakeJobsApi

    return FakeJobsApi()
