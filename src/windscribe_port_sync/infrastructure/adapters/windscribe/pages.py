"""Extraction contracts for every Windscribe page and endpoint we talk to.

All provider markup knowledge lives here so that markup drift breaks one module
(and its golden-file tests) instead of the session/reconciler logic. Each
function takes raw response data and returns a small tagged result type;
nothing here performs I/O.

Contracts:

``POST /res/logintoken`` (JSON)
    ``{"token": str, "captcha"?: {"background": b64, "slider"?: b64, "top": int}}``
``POST /login`` (HTML, redirects disabled)
    200 -> error text inside ``<div class="content_message error">``;
    302 -> ``ws_session_auth_hash`` in a Set-Cookie header.
``GET /myaccount`` (HTML, redirects disabled)
    inline script ``csrf_time = <int>;`` and ``csrf_token = '<word>';``;
    a redirect means the session cookie is stale.
``GET /staticips/load`` (HTML)
    inline script ``epfExpires = <int>;`` (0 when no lease) and zero to two
    bare ``<span>NNNN</span>`` port values (external first, internal second).
``POST /staticips/postEphPort`` and ``/staticips/deleteEphPort`` (JSON)
    ``{"success": 0|1, "message"?: str, "epf"?: {"ext", "int", "start_ts"} | bool}``
"""
from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from email.utils import parsedate_to_datetime
from http.cookies import CookieError, SimpleCookie
from typing import Any
from urllib.parse import unquote

from bs4 import BeautifulSoup  # type: ignore[import-untyped]

from windscribe_port_sync.domain.errors import AuthChallengeError, ParseError
from windscribe_port_sync.domain.model import CaptchaChallenge, CsrfInfo, PortForwardingState

SESSION_COOKIE_NAME = "ws_session_auth_hash"

_CSRF_TIME_RE = re.compile(r"csrf_time = (\d+);")
_CSRF_TOKEN_RE = re.compile(r"csrf_token = '(\w+)';")
_EPF_EXPIRES_RE = re.compile(r"epfExpires = (\d+);")
_PORT_RE = re.compile(r"\d+")

TWO_FACTOR_MARKERS = ("2fa", "two factor", "two-factor", "2-factor", "authentication code")


# =========================
# Tagged results
# =========================
@dataclass(frozen=True)
class LoginChallenge:
    token: str
    captcha: CaptchaChallenge | None = None


@dataclass(frozen=True)
class LoginSucceeded:
    cookie_value: str
    expires_at: datetime | None


@dataclass(frozen=True)
class LoginRejected:
    message: str
    two_factor: bool = False


@dataclass(frozen=True)
class LoginIncomplete:
    reason: str


LoginOutcome = LoginSucceeded | LoginRejected | LoginIncomplete


@dataclass(frozen=True)
class CsrfPageLoaded:
    csrf: CsrfInfo


@dataclass(frozen=True)
class CsrfPageRedirected:
    location: str


CsrfPage = CsrfPageLoaded | CsrfPageRedirected


@dataclass(frozen=True)
class PortMutationOk:
    # Only set by postEphPort
    lease: PortForwardingState | None = None
    # deleteEphPort answers epf=false when there was nothing to delete
    existed: bool = True


@dataclass(frozen=True)
class PortMutationFailed:
    message: str


PortMutation = PortMutationOk | PortMutationFailed


# =========================
# Login
# =========================
def parse_login_token(data: Any) -> LoginChallenge:
    if not isinstance(data, Mapping):
        raise AuthChallengeError("Login token response is not a JSON object")
    token = data.get("token")
    if not token:
        raise AuthChallengeError(f"No token in login token response: {data.get('message', 'no message')}")
    captcha = data.get("captcha")
    if not captcha:
        return LoginChallenge(token=str(token))
    if not isinstance(captcha, Mapping) or not captcha.get("background"):
        raise AuthChallengeError("Captcha challenge without a background image")
    try:
        top = int(captcha.get("top", 0))
    except (TypeError, ValueError) as e:
        raise AuthChallengeError(f"Captcha challenge with invalid top offset: {captcha.get('top')!r}") from e
    return LoginChallenge(
        token=str(token),
        captcha=CaptchaChallenge(
            background=captcha["background"],
            slider=captcha.get("slider") or None,
            top=top,
        ),
    )


def parse_login_response(status_code: int, html: str, set_cookies: Sequence[str], *, now: datetime) -> LoginOutcome:
    if status_code == 200:
        message = extract_error_message(html)
        if not message:
            return LoginRejected("Received 200 but no expected error message; check response")
        lowered = message.lower()
        return LoginRejected(message, two_factor=any(m in lowered for m in TWO_FACTOR_MARKERS))
    if status_code != 302:
        return LoginIncomplete(f"Unexpected login response status {status_code}")
    if not set_cookies:
        return LoginIncomplete("No Set-Cookie header in login response")
    cookie = find_cookie(set_cookies, SESSION_COOKIE_NAME, now=now)
    if cookie is None:
        return LoginIncomplete(f"Failed to find {SESSION_COOKIE_NAME} in Set-Cookie")
    return LoginSucceeded(*cookie)


def extract_error_message(html: str) -> str | None:
    soup = BeautifulSoup(html, "html.parser")
    box = soup.find("div", class_="content_message error")
    if box is None:
        return None
    text = box.get_text(" ", strip=True)
    return text or None


def find_cookie(set_cookies: Sequence[str], name: str, *, now: datetime) -> tuple[str, datetime | None] | None:
    """Finds ``name`` among Set-Cookie lines and returns (decoded value, expiry)."""
    for line in set_cookies:
        jar: SimpleCookie = SimpleCookie()
        try:
            jar.load(line)
        except CookieError:
            continue
        morsel = jar.get(name)
        if morsel is None:
            continue
        expires_at: datetime | None = None
        if morsel["max-age"]:
            expires_at = now + timedelta(seconds=int(morsel["max-age"]))
        elif morsel["expires"]:
            try:
                expires_at = parsedate_to_datetime(morsel["expires"])
            except (TypeError, ValueError):
                expires_at = None
        return unquote(morsel.value), expires_at
    return None


# =========================
# Account page
# =========================
def parse_csrf_page(status_code: int, html: str, location: str = "") -> CsrfPage:
    if status_code != 200:
        return CsrfPageRedirected(location or f"status {status_code}")
    time_match = _CSRF_TIME_RE.search(html)
    token_match = _CSRF_TOKEN_RE.search(html)
    if not time_match:
        raise ParseError("csrf_time not found on account page")
    if not token_match:
        raise ParseError("csrf_token not found on account page")
    return CsrfPageLoaded(CsrfInfo(csrf_time=int(time_match.group(1)), csrf_token=token_match.group(1)))


# =========================
# Port forwarding
# =========================
def parse_port_forwarding_page(html: str) -> PortForwardingState:
    expires = _EPF_EXPIRES_RE.search(html)
    if not expires:
        raise ParseError("epfExpires not found on port forwarding page")
    soup = BeautifulSoup(html, "html.parser")
    ports = tuple(
        int(span.string)
        for span in soup.find_all("span")
        if not span.attrs and span.string and _PORT_RE.fullmatch(span.string)
    )
    return PortForwardingState(ports=ports, lease_start=int(expires.group(1)))


def parse_port_mutation(data: Any) -> PortMutation:
    if not isinstance(data, Mapping):
        return PortMutationFailed("response is not a JSON object")
    if not data.get("success"):
        return PortMutationFailed(f"success = 0; {data.get('message') or 'No message'}")
    epf = data.get("epf")
    if isinstance(epf, Mapping):
        try:
            lease = PortForwardingState(
                ports=(int(epf["ext"]), int(epf["int"])),
                lease_start=int(epf["start_ts"]),
            )
        except (KeyError, TypeError, ValueError):
            return PortMutationFailed(f"malformed epf in response: {epf!r}")
        return PortMutationOk(lease=lease)
    return PortMutationOk(existed=epf is not False)
