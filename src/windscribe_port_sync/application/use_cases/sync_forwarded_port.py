from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from windscribe_port_sync.application.ports.clock_port import Clock, SystemClock
from windscribe_port_sync.application.ports.container_port import ContainerRestartPort, PortExportPort
from windscribe_port_sync.application.ports.port_forwarding_port import PortForwardingPort
from windscribe_port_sync.application.ports.torrent_client_port import TorrentClientPort
from windscribe_port_sync.domain.errors import PortSyncError
from windscribe_port_sync.domain.model import ForwardedPort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    status: str  # "IN_SYNC" | "UPDATED" | "UNKNOWN_PORT" | "ERROR"
    port: ForwardedPort | None
    next_run: datetime | None
    next_retry: datetime | None
    message: str
    from_cache: bool = False


@dataclass(frozen=True)
class SyncDelays:
    windscribe_retry: timedelta = timedelta(hours=1)
    windscribe_extra: timedelta = timedelta(minutes=1)
    client_retry: timedelta = timedelta(minutes=5)


class SyncForwardedPortUseCase:
    """Reconciles the VPN port, then makes the torrent client listen on it.

    When reconciliation fails the last cached port is still pushed, so the
    client is never left on a stale value just because the provider hiccuped.
    """

    def __init__(
        self,
        windscribe: PortForwardingPort,
        client: TorrentClientPort,
        *,
        delays: SyncDelays | None = None,
        exporter: PortExportPort | None = None,
        restarter: ContainerRestartPort | None = None,
        container_name: str = "",
        clock: Clock | None = None,
    ) -> None:
        self.windscribe = windscribe
        self.client = client
        self.delays = delays or SyncDelays()
        self.exporter = exporter
        self.restarter = restarter
        self.container_name = container_name
        self.clock = clock or SystemClock()

    def execute(self) -> SyncResult:
        next_run: datetime | None = None
        next_retry: datetime | None = None
        messages: list[str] = []

        try:
            port_info = self.windscribe.update_port()
            next_run = port_info.expires_at + self.delays.windscribe_extra
        except Exception as e:
            # Unexpected failures still fall back to the cached port and retry
            logger.error("Windscribe update failed: %s", e, exc_info=not isinstance(e, PortSyncError))
            messages.append(f"Windscribe update failed: {e}")
            next_retry = self.clock.now() + self.delays.windscribe_retry
            port_info = self.windscribe.get_port()

        from_cache = next_retry is not None and port_info is not None
        status = "ERROR"
        try:
            current = self.client.get_port()
            if port_info is None:
                logger.info("Windscribe port is unknown, current torrent port is %s", current)
                status = "UNKNOWN_PORT"
            elif current == port_info.port:
                logger.info("Current torrent port (%s) already matches windscribe port", current)
                status = "IN_SYNC"
            else:
                logger.info("Current torrent port (%s) does not match windscribe port (%s)", current, port_info.port)
                self._push_port(port_info.port)
                status = "UPDATED"
        except Exception as e:
            logger.error("Torrent update failed: %s", e, exc_info=not isinstance(e, PortSyncError))
            messages.append(f"Torrent update failed: {e}")
            next_retry = self.clock.now() + self.delays.client_retry

        return SyncResult(status, port_info, next_run, next_retry, "; ".join(messages) or "ok", from_cache)

    def _push_port(self, port: int) -> None:
        self.client.update_port(port)

        # double check
        current = self.client.get_port()
        if current != port:
            raise PortSyncError(f"Unable to set torrent port! Current torrent port: {current}")

        if self.exporter is not None:
            self.exporter.write(port)

        if self.restarter is not None and self.container_name:
            try:
                self.restarter.restart(self.container_name)
            except PortSyncError as e:
                logger.error("Failed to restart container '%s': %s", self.container_name, e)

        logger.info("Torrent port updated")
