from __future__ import annotations

import json as _json
import threading
import time
from datetime import UTC, datetime, timedelta
from pathlib import Path

from windscribe_port_sync.application.ports.antibot_port import ClearanceResult
from windscribe_port_sync.application.ports.http_client_port import HttpResponse
from windscribe_port_sync.domain.errors import AntiBotFailure, PortSyncError
from windscribe_port_sync.domain.model import ForwardedPort

FIXTURES = Path(__file__).resolve().parent.parent / "fixtures"
NOW = datetime(2024, 10, 20, 12, 0, tzinfo=UTC)


def fixture(name: str) -> str:
    return (FIXTURES / name).read_text()


def resp(status: int = 200, text: str = "", *, json=None, set_cookies=(), headers=None) -> HttpResponse:
    if json is not None:
        text = _json.dumps(json)
    return HttpResponse(status, text, "", headers or {}, set_cookies=set_cookies)


class FixedClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.current = now
    def now(self) -> datetime:
        return self.current
    def advance(self, delta: timedelta) -> None:
        self.current += delta


class FakeHttp:
    """Replays queued responses per (method, url) and records every call.

    The last queued response for a route keeps being returned.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list] = {}
        self.calls: list[dict] = []
    def on(self, method: str, url: str, *responses) -> "FakeHttp":
        self.routes.setdefault((method, url), []).extend(responses)
        return self
    def _answer(self, method: str, url: str, **kwargs) -> HttpResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        queue = self.routes.get((method, url))
        if not queue:
            raise AssertionError(f"unexpected {method} {url}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item
    def get(self, url, *, headers=None):
        return self._answer("GET", url, headers=dict(headers or {}))
    def post(self, url, *, data=None, json=None, headers=None, timeout=None):
        return self._answer("POST", url, data=data, json=json, headers=dict(headers or {}), timeout=timeout)
    def urls(self, method: str | None = None) -> list[str]:
        return [c["url"] for c in self.calls if method is None or c["method"] == method]


class FakeAntiBot:
    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.fail = fail
        self.delay = delay
        self.called = 0
        self._count_lock = threading.Lock()
    def fetch_page(self, url, *, timeout_ms):
        with self._count_lock:
            self.called += 1
        if self.delay:
            time.sleep(self.delay)
        if self.fail:
            raise AntiBotFailure("challenge not cleared")
        return ClearanceResult(cookies={"cf_clearance": "clr"}, user_agent="UA/1.0")


class FakeTorrentClient:
    def __init__(self, port: int = 6881, *, fail: bool = False, sticky: bool = False) -> None:
        self.port = port
        self.fail = fail
        # ignores updates, like a client that rejects the preference
        self.sticky = sticky
        self.updates: list[int] = []
    def get_port(self) -> int:
        if self.fail:
            raise PortSyncError("client unreachable")
        return self.port
    def update_port(self, port: int) -> None:
        self.updates.append(port)
        if not self.sticky:
            self.port = port


class FakeWindscribe:
    def __init__(self, port: ForwardedPort | None = None, *, fail: bool = False, cached: ForwardedPort | None = None) -> None:
        self.port = port
        self.fail = fail
        self.cached = cached
        self.updates = 0
    def update_port(self) -> ForwardedPort:
        self.updates += 1
        if self.fail:
            raise PortSyncError("Failed to get csrf token from my account page: boom")
        assert self.port is not None
        self.cached = self.port
        return self.port
    def get_port(self) -> ForwardedPort | None:
        return self.cached


class FakeExporter:
    def __init__(self) -> None:
        self.written: list[int] = []
    def write(self, port: int) -> str:
        self.written.append(port)
        return "/tmp/post-rules.txt"


class FakeRestarter:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.restarted: list[str] = []
    def restart(self, name: str) -> None:
        self.restarted.append(name)
        if self.fail:
            raise PortSyncError("docker down")
