import time
from datetime import timedelta

import jwt
import pytest

import core.auth_utils as auth_utils
from core.auth_utils import (
    AuthSession,
    LoginRedirector,
    is_safe_return_path,
    is_token_usable,
    read_token_claims,
    token_expires_at,
)


def _token(exp_in: int = 3600, **claims) -> str:
    payload = {"sub": "user-1", **claims}
    if exp_in is not None:
        payload["exp"] = int(time.time()) + exp_in
    return jwt.encode(payload, "test-secret", algorithm="HS256")


class TestTokenInspection:
    def test_claims_read_without_secret(self):
        assert read_token_claims(_token())["sub"] == "user-1"

    def test_garbage_token(self):
        with pytest.raises(ValueError):
            read_token_claims("not-a-jwt")
        assert is_token_usable("not-a-jwt") is False

    def test_expiry(self):
        token = _token(exp_in=120)
        expires = token_expires_at(token)
        assert expires.tzinfo is not None
        assert is_token_usable(token)
        assert not is_token_usable(token, now=expires + timedelta(seconds=1))

    def test_inside_leeway_counts_as_expired(self):
        assert not is_token_usable(_token(exp_in=10))

    def test_no_exp_claim_is_usable(self):
        assert token_expires_at(_token(exp_in=None)) is None
        assert is_token_usable(_token(exp_in=None))

    def test_missing_token(self):
        assert not is_token_usable(None)
        assert not is_token_usable("")


class TestAuthSession:
    def test_flips_are_reported_once(self):
        session = AuthSession()
        seen = []
        session.on_change(seen.append)

        assert session.set_token(_token())
        session.set_token(_token())
        session.clear()
        session.clear()

        assert seen == [True, False]
        assert session.token is None

    def test_expired_token_never_authenticates(self):
        session = AuthSession(_token(exp_in=-60))
        assert not session.is_authenticated
        assert session.token is None

    def test_check_expiry_logs_out(self, monkeypatch):
        session = AuthSession(_token(exp_in=600))
        seen = []
        session.on_change(seen.append)
        assert session.check_expiry()

        monkeypatch.setattr(auth_utils, "EXPIRY_LEEWAY_SECONDS", 3600)

        assert session.check_expiry() is False
        assert seen == [False]


class TestLoginRedirector:
    def test_login_url_preserves_destination(self):
        r = LoginRedirector()
        assert r.login_url("/jobs?workMode=remote&page=2") == "/auth/login?redirect=%2Fjobs%3FworkMode%3Dremote%26page%3D2"
        assert r.login_url(None) == "/auth/login"

    def test_redirect_and_pop(self):
        visited = []
        r = LoginRedirector(navigate=visited.append)
        url = r.redirect("/jobs/abc")

        assert visited == [url]
        assert r.pop_intended_url() == "/jobs/abc"
        assert r.pop_intended_url(default="/jobs") == "/jobs"

    def test_job_redirect_uses_plain_login_path(self):
        visited = []
        r = LoginRedirector(navigate=visited.append)

        assert r.redirect_for_job("https://apply.test/j1") == "/auth/login"
        assert visited == ["/auth/login"]

    def test_after_login_opens_pending_job_then_dashboard(self):
        r = LoginRedirector()
        r.redirect("/jobs?page=2")
        r.redirect_for_job("https://apply.test/j1")

        first = r.after_login(return_to="/jobs")
        assert first.opens_job
        assert first.job_url == "https://apply.test/j1"
        assert first.destination == "/dashboard"

        second = r.after_login()
        assert not second.opens_job
        assert second.destination == "/dashboard"

    def test_after_login_prefers_return_to_then_remembered_destination(self):
        r = LoginRedirector()
        r.redirect("/jobs/abc")
        assert r.after_login(return_to="/jobs?workMode=remote").destination == "/jobs?workMode=remote"

        r.redirect("/jobs/abc")
        assert r.after_login().destination == "/jobs/abc"

    @pytest.mark.parametrize("url", ["//evil.example/jobs", "https://evil.example", "jobs", "", None])
    def test_unsafe_return_paths_fall_back(self, url):
        r = LoginRedirector()
        assert not is_safe_return_path(url)
        assert r.after_login(return_to=url).destination == "/dashboard"
