import httpx
import pytest
from fastapi.testclient import TestClient

import api.geolocation as geo_route
from core.rate_limit import TokenBucketLimiter
from main import app


def _provider_transport(answers, seen):
    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.host)
        status, body = answers.get(request.url.host, (503, {}))
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler)


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(geo_route, "geo_limiter", TokenBucketLimiter(rate=30, per_seconds=60, capacity=30))
    app.state.geo_transport = None
    with TestClient(app) as c:
        yield c
    app.state.geo_transport = None


class TestPlatformHeaders:
    def test_vercel_headers_win(self, client):
        resp = client.get(
            "/api/geolocation",
            headers={"x-vercel-ip-country": "GH", "x-vercel-ip-city": "Accra", "x-forwarded-for": "41.1.2.3"},
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["countryCode"] == "GH"
        assert body["city"] == "Accra"
        assert body["source"] == "vercel"

    def test_cloudflare_unknown_country_ignored(self, client):
        resp = client.get("/api/geolocation", headers={"cf-ipcountry": "XX"})
        assert resp.status_code == 200
        assert resp.json() is None

    def test_cloudflare_country(self, client):
        resp = client.get("/api/geolocation", headers={"cf-ipcountry": "KE"})
        assert resp.json()["source"] == "cloudflare"


class TestIpLookup:
    def test_forwarded_ip_resolved_via_ipinfo(self, client):
        seen = []
        app.state.geo_transport = _provider_transport(
            {"ipinfo.io": (200, {"country": "GH", "region": "Greater Accra", "city": "Accra"})}, seen
        )

        resp = client.get("/api/geolocation", headers={"x-forwarded-for": "41.1.2.3, 10.0.0.1"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["country"] == "Ghana"
        assert body["countryCode"] == "GH"
        assert body["source"] == "ipinfo"
        assert seen == ["ipinfo.io"]

    def test_second_provider_used_when_first_fails(self, client):
        seen = []
        app.state.geo_transport = _provider_transport(
            {"ip-api.com": (200, {"status": "success", "country": "Nigeria", "countryCode": "NG"})}, seen
        )

        resp = client.get("/api/geolocation", headers={"x-real-ip": "102.1.2.3"})

        assert resp.json()["source"] == "ip-api"
        assert seen == ["ipinfo.io", "ip-api.com"]

    def test_all_providers_down_answers_null(self, client):
        app.state.geo_transport = _provider_transport({}, [])
        resp = client.get("/api/geolocation", headers={"x-real-ip": "102.1.2.3"})
        assert resp.status_code == 200
        assert resp.json() is None

    def test_loopback_is_not_a_client_ip(self, client):
        resp = client.get("/api/geolocation", headers={"x-forwarded-for": "127.0.0.1"})
        assert resp.json() is None

    def test_rate_limited_per_ip(self, client, monkeypatch):
        monkeypatch.setattr(geo_route, "geo_limiter", TokenBucketLimiter(rate=1, per_seconds=60, capacity=1))
        app.state.geo_transport = _provider_transport({"ipinfo.io": (200, {"country": "GH"})}, [])

        first = client.get("/api/geolocation", headers={"x-real-ip": "41.1.2.3"})
        second = client.get("/api/geolocation", headers={"x-real-ip": "41.1.2.3"})
        other = client.get("/api/geolocation", headers={"x-real-ip": "41.9.9.9"})

        assert first.status_code == 200
        assert second.status_code == 429
        assert int(second.headers["Retry-After"]) > 0
        assert other.status_code == 200


def test_health(client):
    assert client.get("/").json() == {"status": "ok"}


class TestRateLimiter:
    def test_refills_over_time(self):
        now = [0.0]
        limiter = TokenBucketLimiter(rate=2, per_seconds=10, capacity=2, clock=lambda: now[0])
        assert limiter.allow("k")
        assert limiter.allow("k")
        assert not limiter.allow("k")
        assert limiter.retry_after("k") == pytest.approx(5.0)

        now[0] = 5.0
        assert limiter.allow("k")

    def test_prunes_idle_keys(self):
        now = [0.0]
        limiter = TokenBucketLimiter(rate=1, per_seconds=1, capacity=1, clock=lambda: now[0], max_keys=2)
        limiter.allow("a")
        limiter.allow("b")
        now[0] = 10.0
        limiter.allow("c")
        assert set(limiter._buckets) == {"c"}
