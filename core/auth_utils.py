# core/auth_utils.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional
from urllib.parse import quote

import jwt
from jwt import PyJWTError

from settings import LOGIN_PATH, POST_LOGIN_PATH

logger = logging.getLogger(__name__)

# Treat tokens this close to expiry as already expired.
EXPIRY_LEEWAY_SECONDS = 30


# -------------------------------------------------------------------
# Access token inspection (the API verifies; we only read claims)
# -------------------------------------------------------------------
def read_token_claims(token: str) -> dict:
    try:
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except PyJWTError as e:
        raise ValueError(f"Unreadable access token: {e}") from e


def token_expires_at(token: str) -> Optional[datetime]:
    exp = read_token_claims(token).get("exp")
    if exp is None:
        return None
    return datetime.fromtimestamp(int(exp), tz=timezone.utc)


def is_token_usable(token: Optional[str], now: Optional[datetime] = None) -> bool:
    """
    - No token -> False
    - Unreadable -> False
    - No exp claim -> True (the API decides)
    - Expired or inside the leeway -> False
    """
    if not token:
        return False
    try:
        expires = token_expires_at(token)
    except ValueError:
        logger.info("discarding unreadable access token")
        return False
    if expires is None:
        return True
    now = now or datetime.now(timezone.utc)
    return (expires - now).total_seconds() > EXPIRY_LEEWAY_SECONDS


AuthListener = Callable[[bool], None]


class AuthSession:
    """
    Holds the bearer token and reports authentication flips (never repeats).
    """

    def __init__(self, token: Optional[str] = None):
        self._token: Optional[str] = None
        self._authenticated = False
        self._listeners: List[AuthListener] = []
        if token:
            self.set_token(token)

    @property
    def token(self) -> Optional[str]:
        return self._token if self._authenticated else None

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    def on_change(self, listener: AuthListener) -> None:
        self._listeners.append(listener)

    def set_token(self, token: Optional[str]) -> bool:
        usable = is_token_usable(token)
        self._token = token if usable else None
        self._flip(usable)
        return usable

    def check_expiry(self) -> bool:
        """Re-evaluate the stored token; call on focus/visibility or before mutations."""
        if self._authenticated and not is_token_usable(self._token):
            self._token = None
            self._flip(False)
        return self._authenticated

    def clear(self) -> None:
        self._token = None
        self._flip(False)

    def _flip(self, authenticated: bool) -> None:
        if authenticated == self._authenticated:
            return
        self._authenticated = authenticated
        for listener in list(self._listeners):
            listener(authenticated)


# -------------------------------------------------------------------
# Login redirect with preserved destination
# -------------------------------------------------------------------
def is_safe_return_path(url: Optional[str]) -> bool:
    """Same-site paths only: "/jobs" yes, "//evil.example" and absolute URLs no."""
    return bool(url) and url.startswith("/") and not url.startswith("//")


@dataclass(frozen=True)
class PostLoginRedirect:
    destination: str
    job_url: Optional[str] = None

    @property
    def opens_job(self) -> bool:
        return self.job_url is not None


class LoginRedirector:
    def __init__(self, navigate: Optional[Callable[[str], None]] = None, login_path: str = LOGIN_PATH):
        self._navigate = navigate
        self.login_path = login_path
        self._intended: Optional[str] = None
        self._intended_job: Optional[str] = None

    def login_url(self, return_to: Optional[str]) -> str:
        if not return_to:
            return self.login_path
        return f"{self.login_path}?redirect={quote(return_to, safe='')}"

    def redirect(self, return_to: Optional[str]) -> str:
        self._intended = return_to or None
        url = self.login_url(return_to)
        if self._navigate is not None:
            self._navigate(url)
        return url

    def redirect_for_job(self, job_url: str) -> str:
        """Anonymous apply: remember the posting and send the user to log in."""
        self._intended_job = job_url
        if self._navigate is not None:
            self._navigate(self.login_path)
        return self.login_path

    def pop_intended_url(self, default: Optional[str] = None) -> Optional[str]:
        """After a successful login: where to send the user, then forget it."""
        url, self._intended = self._intended, None
        return url or default

    def after_login(self, return_to: Optional[str] = None, default: str = POST_LOGIN_PATH) -> PostLoginRedirect:
        """
        A pending job application wins: open the posting and land on the
        default page. Otherwise go to return_to (same-site only), then to the
        destination remembered by redirect(), then to the default.
        """
        job_url, self._intended_job = self._intended_job, None
        intended = self.pop_intended_url()
        if job_url:
            return PostLoginRedirect(destination=default, job_url=job_url)
        for candidate in (return_to, intended):
            if is_safe_return_path(candidate):
                return PostLoginRedirect(destination=candidate)
        return PostLoginRedirect(destination=default)
