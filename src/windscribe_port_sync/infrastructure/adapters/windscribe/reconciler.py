from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from windscribe_port_sync.application.ports.cache_port import CachePort
from windscribe_port_sync.application.ports.clock_port import Clock, SystemClock
from windscribe_port_sync.application.ports.http_client_port import HttpClientPort, HttpResponse
from windscribe_port_sync.application.ports.port_forwarding_port import PortForwardingPort
from windscribe_port_sync.domain.errors import ParseError, PortApiError, PortSyncError, with_context
from windscribe_port_sync.domain.model import CsrfInfo, ForwardedPort, PortForwardingState
from windscribe_port_sync.domain.value_objects.port import Port
from windscribe_port_sync.infrastructure.adapters.windscribe import pages
from windscribe_port_sync.infrastructure.adapters.windscribe.session import WINDSCRIBE_BASE, CredentialSession

logger = logging.getLogger(__name__)

STATUS_URL = f"{WINDSCRIBE_BASE}/staticips/load"
DELETE_PORT_URL = f"{WINDSCRIBE_BASE}/staticips/deleteEphPort"
REQUEST_PORT_URL = f"{WINDSCRIBE_BASE}/staticips/postEphPort"

PORT_CACHE_KEY = "port"
# The provider's client renews ephemeral leases a week after they start
LEASE_RENEWAL_WINDOW = timedelta(days=7)


class PortForwardingReconciler(PortForwardingPort):
    """Keeps exactly one healthy ephemeral port lease on the account."""

    def __init__(self, session: CredentialSession, http: HttpClientPort, cache: CachePort, *, clock: Clock | None = None) -> None:
        self.session = session
        self.http = http
        self.cache = cache
        self.clock = clock or SystemClock()

    def _log(self, msg: str, level: int = logging.INFO) -> None:
        logger.log(level, "[PortForwardingReconciler] %s", msg)

    # ---------- Reconciliation ----------
    def update_port(self) -> ForwardedPort:
        # Also verifies the session and logs in when needed
        csrf = self.session.get_csrf_token()
        state = self.get_port_forwarding_info()

        if state.is_mismatched:
            self._log(f"Detected mismatched ports {list(state.ports)}, removing existing ports")
            self.remove_ephemeral_port(csrf)
            state = PortForwardingState()
            self.cache.delete(PORT_CACHE_KEY)

        if not state.is_active:
            self._log("No windscribe port configured, requesting new matching ephemeral port")
            state = self.request_matching_ephemeral_port(csrf)
        else:
            self._log(f"Using existing windscribe ephemeral port: {state.port}")

        if state.port is None:
            raise ParseError("Active lease without any port on the port forwarding page")
        try:
            port = Port(state.port)
        except ValueError as e:
            raise ParseError(str(e)) from e

        result = ForwardedPort(
            port=port,
            expires_at=datetime.fromtimestamp(state.lease_start, UTC) + LEASE_RENEWAL_WINDOW,
        )
        self.cache.set(PORT_CACHE_KEY, str(result.port), result.expires_at - self.clock.now())
        return result

    def get_port(self) -> ForwardedPort | None:
        cached = self.cache.get_with_expiry(PORT_CACHE_KEY)
        if cached is None:
            return None
        return ForwardedPort(port=int(cached[0]), expires_at=cached[1])

    # ---------- Provider operations ----------
    def get_port_forwarding_info(self) -> PortForwardingState:
        try:
            cookie = self.session.get_session()
            resp = self.http.get(STATUS_URL, headers=self.session.session_headers(cookie))
            if resp.status_code != 200:
                raise PortApiError(f"port forwarding page answered {resp.status_code}")
            return pages.parse_port_forwarding_page(resp.text)
        except PortSyncError as e:
            raise with_context(e, "Failed to get port forwarding info") from e

    def remove_ephemeral_port(self, csrf: CsrfInfo) -> None:
        try:
            resp = self._post_mutation(DELETE_PORT_URL, {"ctime": csrf.csrf_time, "ctoken": csrf.csrf_token})
            outcome = self._parse_mutation(resp)
        except PortSyncError as e:
            raise with_context(e, "Failed to delete ephemeral port") from e

        if not outcome.existed:
            self._log("Tried to remove a non-existent ephemeral port, ignoring", logging.WARNING)
        else:
            self._log("Deleted ephemeral port")

    def request_matching_ephemeral_port(self, csrf: CsrfInfo) -> PortForwardingState:
        try:
            # An empty port asks for an internal port matching the external one
            resp = self._post_mutation(
                REQUEST_PORT_URL, {"ctime": csrf.csrf_time, "ctoken": csrf.csrf_token, "port": ""}
            )
            outcome = self._parse_mutation(resp)
            if outcome.lease is None:
                raise PortApiError("success = 1 but no epf in response")
        except PortSyncError as e:
            raise with_context(e, "Failed to request matching ephemeral port") from e

        self._log(f"Created new matching ephemeral port: {outcome.lease.port}")
        return outcome.lease

    def _post_mutation(self, url: str, form: dict[str, object]) -> HttpResponse:
        cookie = self.session.get_session()
        headers = self.session.session_headers(cookie)
        headers["Content-Type"] = "application/x-www-form-urlencoded"
        return self.http.post(url, data=form, headers=headers)

    @staticmethod
    def _parse_mutation(resp: HttpResponse) -> pages.PortMutationOk:
        try:
            data = resp.json()
        except ValueError as e:
            raise PortApiError(f"non-JSON response (status {resp.status_code})") from e
        outcome = pages.parse_port_mutation(data)
        if isinstance(outcome, pages.PortMutationFailed):
            raise PortApiError(outcome.message)
        return outcome
