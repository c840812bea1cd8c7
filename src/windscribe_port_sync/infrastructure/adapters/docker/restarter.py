from __future__ import annotations

import logging
from urllib.parse import quote

import httpx

from windscribe_port_sync.application.ports.container_port import ContainerRestartPort
from windscribe_port_sync.domain.errors import PortSyncError

logger = logging.getLogger(__name__)


class ContainerRestartError(PortSyncError):
    pass


class DockerSocketRestarter(ContainerRestartPort):
    """Restarts a container through the Docker Engine API on the unix socket."""

    def __init__(self, socket_path: str = "/var/run/docker.sock", *, timeout: float = 60.0, transport: httpx.BaseTransport | None = None) -> None:
        self._client = httpx.Client(
            base_url="http://docker",
            transport=transport or httpx.HTTPTransport(uds=socket_path),
            timeout=timeout,
        )

    def restart(self, name: str) -> None:
        try:
            resp = self._client.post(f"/containers/{quote(name, safe='')}/restart")
        except httpx.HTTPError as e:
            raise ContainerRestartError(f"Docker API unreachable: {e}") from e
        if resp.status_code != 204:
            raise ContainerRestartError(f"Restart of '{name}' failed ({resp.status_code}): {resp.text[:200]}")
        logger.info("Container '%s' restarted successfully", name)
