from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

from windscribe_port_sync.application.ports.http_client_port import HttpClientPort, HttpResponse
from windscribe_port_sync.application.ports.torrent_client_port import TorrentClientPort
from windscribe_port_sync.domain.errors import PortSyncError
from windscribe_port_sync.domain.value_objects.port import Port
from windscribe_port_sync.infrastructure.adapters.windscribe.pages import find_cookie

logger = logging.getLogger(__name__)


class TorrentClientError(PortSyncError):
    """qBittorrent refused the login or a preferences call."""


class QBittorrentClient(TorrentClientPort):
    """Reads and sets qBittorrent's listening port through the Web API v2.

    Logs in lazily and once more when the SID cookie is rejected (403).
    """

    def __init__(self, http: HttpClientPort, base_url: str, username: str = "", password: str = "") -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}/api/v2"
        self.username = username
        self.password = password
        self._sid: str | None = None

    def _log(self, msg: str) -> None:
        logger.info("[QBittorrentClient] %s", msg)

    def _login(self) -> None:
        resp = self.http.post(
            f"{self.api_url}/auth/login",
            data={"username": self.username, "password": self.password},
            headers={"Referer": self.base_url, "Origin": self.base_url},
        )
        if resp.status_code != 200 or resp.text.strip() != "Ok.":
            raise TorrentClientError(f"qBittorrent login failed ({resp.status_code}): {resp.text.strip()[:80]}")
        cookie = find_cookie(resp.set_cookies, "SID", now=datetime.now(UTC))
        # Auth bypass for localhost/whitelisted subnets answers without a cookie
        self._sid = cookie[0] if cookie else ""
        self._log("Logged into qBittorrent")

    def _headers(self) -> dict[str, str]:
        headers = {"Referer": self.base_url}
        if self._sid:
            headers["Cookie"] = f"SID={self._sid}"
        return headers

    def _call(self, method: str, path: str, data: dict[str, str] | None = None) -> HttpResponse:
        for attempt in range(2):
            if self._sid is None:
                self._login()
            if method == "GET":
                resp = self.http.get(f"{self.api_url}{path}", headers=self._headers())
            else:
                resp = self.http.post(f"{self.api_url}{path}", data=data, headers=self._headers())
            if resp.status_code == 403 and attempt == 0:
                self._sid = None
                continue
            if resp.status_code != 200:
                raise TorrentClientError(f"{method} {path} -> {resp.status_code}")
            return resp
        raise TorrentClientError(f"{method} {path} still forbidden after relogin")

    def get_port(self) -> int:
        try:
            prefs = self._call("GET", "/app/preferences").json()
            return Port(prefs["listen_port"])
        except (KeyError, TypeError, ValueError) as e:
            raise TorrentClientError(f"Unexpected preferences payload: {e}") from e

    def update_port(self, port: int) -> None:
        port = Port(port)
        self._call("POST", "/app/setPreferences", {"json": json.dumps({"listen_port": port})})
        self._log(f"Listening port set to {port}")
