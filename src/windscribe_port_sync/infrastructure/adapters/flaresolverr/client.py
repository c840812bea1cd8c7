from __future__ import annotations

import logging
from collections.abc import Mapping

from windscribe_port_sync.application.ports.antibot_port import AntiBotSolverPort, ClearanceResult
from windscribe_port_sync.application.ports.http_client_port import HttpClientPort
from windscribe_port_sync.domain.errors import AntiBotFailure, TransportError

logger = logging.getLogger(__name__)

CLEARANCE_COOKIE_PREFIXES = ("cf_", "__cf")
# Headroom on top of FlareSolverr's own maxTimeout so it can answer with an error
TIMEOUT_MARGIN_SECONDS = 15.0


class FlareSolverrClient(AntiBotSolverPort):
    """Obtains Cloudflare clearance cookies through a FlareSolverr instance.

    FlareSolverr drives a real browser, waits until the challenge is cleared and
    returns the browser's cookies plus the user-agent the clearance is bound to.
    Only the clearance cookies (``cf_*`` / ``__cf*``) are kept.
    """

    def __init__(self, http: HttpClientPort, url: str) -> None:
        self.http = http
        self.url = url

    def _log(self, msg: str) -> None:
        logger.info("[FlareSolverrClient] %s", msg)

    def fetch_page(self, url: str, *, timeout_ms: int) -> ClearanceResult:
        self._log(f"Requesting clearance for {url}")
        payload = {"cmd": "request.get", "url": url, "maxTimeout": timeout_ms}
        try:
            resp = self.http.post(
                self.url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=timeout_ms / 1000 + TIMEOUT_MARGIN_SECONDS,
            )
            data = resp.json()
        except TransportError as e:
            raise AntiBotFailure(f"FlareSolverr unreachable at {self.url}: {e}") from e
        except ValueError as e:
            raise AntiBotFailure(f"FlareSolverr answered with non-JSON body (status {resp.status_code})") from e

        if not isinstance(data, Mapping):
            raise AntiBotFailure(f"FlareSolverr answered with a non-object JSON body: {data!r:.80}")
        if data.get("status") != "ok":
            raise AntiBotFailure(f"FlareSolverr failed for GET {url}: {data.get('message', 'no message')}")

        solution = data.get("solution") or {}
        cookies = {
            c["name"]: c["value"]
            for c in solution.get("cookies", [])
            if c.get("name", "").startswith(CLEARANCE_COOKIE_PREFIXES)
        }
        if not cookies:
            raise AntiBotFailure("No Cloudflare clearance cookies found in FlareSolverr response")

        self._log(f"Clearance obtained ({', '.join(sorted(cookies))})")
        return ClearanceResult(cookies=cookies, user_agent=solution.get("userAgent", ""))
