from __future__ import annotations

import logging
import random
import threading
from collections.abc import Callable
from datetime import timedelta
from typing import Any

from windscribe_port_sync.application.ports.antibot_port import AntiBotSolverPort, ClearanceResult
from windscribe_port_sync.application.ports.cache_port import CachePort
from windscribe_port_sync.application.ports.clock_port import Clock, SystemClock
from windscribe_port_sync.application.ports.http_client_port import HttpClientPort
from windscribe_port_sync.domain.errors import (
    AuthChallengeError,
    CredentialRejected,
    PortSyncError,
    SessionExpired,
    TransportError,
    TwoFactorRequired,
    with_context,
)
from windscribe_port_sync.domain.model import CaptchaChallenge, CaptchaSolution, CsrfInfo, SessionCookie
from windscribe_port_sync.infrastructure.adapters.captcha.slider_solver import solve_captcha
from windscribe_port_sync.infrastructure.adapters.http.httpx_client import DEFAULT_USER_AGENT
from windscribe_port_sync.infrastructure.adapters.windscribe import pages
from windscribe_port_sync.infrastructure.adapters.windscribe.signing import (
    generate_totp,
    new_nonce,
    new_request_id,
    sign_token,
)

logger = logging.getLogger(__name__)

WINDSCRIBE_BASE = "https://windscribe.com"
LOGIN_URL = f"{WINDSCRIBE_BASE}/login"
LOGIN_TOKEN_URL = "https://res.windscribe.com/res/logintoken"
MY_ACCOUNT_URL = f"{WINDSCRIBE_BASE}/myaccount"

SESSION_CACHE_KEY = "sessionCookie"

CaptchaSolverFn = Callable[[CaptchaChallenge], CaptchaSolution]


class CredentialSession:
    """Owns the Windscribe login and the cached ``ws_session_auth_hash`` cookie.

    Every session lookup goes through the instance's ``session`` lock, so
    concurrent callers never log in twice or interleave cookie writes. Share one
    instance across everything that talks to the account.
    """

    def __init__(
        self,
        http: HttpClientPort,
        antibot: AntiBotSolverPort,
        cache: CachePort,
        *,
        username: str,
        password: str,
        signing_secret: str,
        totp_secret: str = "",
        antibot_timeout_ms: int = 60000,
        fallback_ttl: timedelta = timedelta(hours=12),
        captcha_solver: CaptchaSolverFn | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.http = http
        self.antibot = antibot
        self.cache = cache
        self.username = username
        self.password = password
        self.signing_secret = signing_secret
        self.totp_secret = totp_secret
        self.antibot_timeout_ms = antibot_timeout_ms
        self.fallback_ttl = fallback_ttl
        self.captcha_solver = captcha_solver or solve_captcha
        self.clock = clock or SystemClock()
        self._session_lock = threading.Lock()
        # Stable per process, like a browser tab keeping its session id
        self._session_id = new_request_id()

    def _log(self, msg: str, level: int = logging.INFO) -> None:
        logger.log(level, "[CredentialSession] %s", msg)

    # ---------- Session ----------
    def get_session(self, force_login: bool = False) -> SessionCookie:
        with self._session_lock:
            if force_login:
                self.cache.delete(SESSION_CACHE_KEY)
            else:
                cached = self.cache.get_with_expiry(SESSION_CACHE_KEY)
                if cached is not None:
                    return SessionCookie(value=cached[0], expires_at=cached[1])

            self._log("Invalid/missing session cookie, logging into windscribe")
            cookie = self.login()
            ttl = cookie.expires_at - self.clock.now()
            self.cache.set(SESSION_CACHE_KEY, cookie.value, ttl)
            self._log(f"Successfully logged into windscribe, session expires in {ttl.total_seconds() / 60:.1f} minutes")
            return cookie

    def session_headers(self, cookie: SessionCookie) -> dict[str, str]:
        return {
            "Cookie": f"{pages.SESSION_COOKIE_NAME}={cookie.value};",
            "User-Agent": DEFAULT_USER_AGENT,
        }

    # ---------- Login ----------
    def login(self) -> SessionCookie:
        """Runs the full browser-emulating login and returns the new session cookie.

        Steps: anti-bot clearance, challenge token (solving a slider captcha
        when one is attached), signed login form, then the 302 carrying the
        session cookie.
        """
        try:
            clearance = self.antibot.fetch_page(LOGIN_URL, timeout_ms=self.antibot_timeout_ms)
            challenge, solution = self._fetch_login_challenge(clearance)
            form = self._build_login_form(challenge.token, solution)
            return self._submit_login(form, clearance)
        except PortSyncError as e:
            raise with_context(e, "Failed to log into windscribe") from e

    def _clearance_headers(self, clearance: ClearanceResult) -> dict[str, str]:
        return {
            "User-Agent": clearance.user_agent or DEFAULT_USER_AGENT,
            "Cookie": "; ".join(f"{k}={v}" for k, v in clearance.cookies.items()),
            "Origin": WINDSCRIBE_BASE,
            "Referer": LOGIN_URL,
        }

    def _fetch_login_challenge(self, clearance: ClearanceResult) -> tuple[pages.LoginChallenge, CaptchaSolution | None]:
        headers = self._clearance_headers(clearance)
        headers["Accept"] = "application/json, text/plain, */*"
        try:
            resp = self.http.post(LOGIN_TOKEN_URL, headers=headers)
            data = resp.json()
        except TransportError as e:
            raise AuthChallengeError(f"Failed to fetch login token: {e}") from e
        except ValueError as e:
            raise AuthChallengeError(f"Login token response is not JSON (status {resp.status_code})") from e

        challenge = pages.parse_login_token(data)
        if challenge.captcha is None:
            return challenge, None
        self._log("Login requires a slider captcha, solving it")
        solution = self.captcha_solver(challenge.captcha)
        self._log(f"Captcha solved with offset {solution.offset}")
        return challenge, solution

    def _build_login_form(self, token: str, solution: CaptchaSolution | None) -> dict[str, Any]:
        form: dict[str, Any] = {
            "login": "1",
            "upgrade": "0",
            "username": self.username,
            "password": self.password,
            "token": token,
            "signature": sign_token(token, self.signing_secret),
            "ts": int(self.clock.now().timestamp()),
            "nonce": new_nonce(),
            "session_id": self._session_id,
            "request_id": new_request_id(),
            "code": self._totp_code(),
        }
        if solution is not None:
            form["captcha_offset"] = solution.offset
            form["captcha_trail"] = solution.trail_json()
        return form

    def _totp_code(self) -> str:
        if not self.totp_secret:
            return ""
        try:
            return generate_totp(self.totp_secret)
        except ValueError as e:
            raise CredentialRejected(f"Configured TOTP secret is unusable: {e}") from e

    def _submit_login(self, form: dict[str, Any], clearance: ClearanceResult) -> SessionCookie:
        headers = self._clearance_headers(clearance)
        headers.update({
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "same-origin",
            "Upgrade-Insecure-Requests": "1",
        })
        resp = self.http.post(LOGIN_URL, data=form, headers=headers)
        now = self.clock.now()
        outcome = pages.parse_login_response(resp.status_code, resp.text, resp.set_cookies, now=now)

        if isinstance(outcome, pages.LoginRejected):
            if outcome.two_factor:
                raise TwoFactorRequired(f"Windscribe login error: {outcome.message}")
            raise CredentialRejected(f"Windscribe login error: {outcome.message}")
        if isinstance(outcome, pages.LoginIncomplete):
            raise AuthChallengeError(outcome.reason)

        self._log("Successfully logged in with anti-bot clearance")
        return SessionCookie(
            value=outcome.cookie_value,
            expires_at=outcome.expires_at or now + self.fallback_ttl,
        )

    # ---------- CSRF ----------
    def get_csrf_token(self, force_login: bool = False) -> CsrfInfo:
        """Loads the account page and extracts the CSRF pair.

        A redirect means the cached cookie went stale: relogin once and retry.
        """
        try:
            cookie = self.get_session(force_login)
            resp = self.http.get(MY_ACCOUNT_URL, headers=self.session_headers(cookie))
            page = pages.parse_csrf_page(resp.status_code, resp.text, resp.headers.get("location", ""))
        except PortSyncError as e:
            raise with_context(e, "Failed to get csrf token from my account page") from e

        if isinstance(page, pages.CsrfPageRedirected):
            if force_login:
                raise SessionExpired(f"Fresh session still redirected away from my account page ({page.location})")
            self._log("Session cookie rejected by my account page, forcing a new login")
            return self.get_csrf_token(force_login=True)
        return page.csrf
