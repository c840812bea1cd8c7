from __future__ import annotations

from typing import Protocol


class ContainerRestartPort(Protocol):
    def restart(self, name: str) -> None: ...


class PortExportPort(Protocol):
    def write(self, port: int) -> str:
        """Persists the port for the VPN container and returns the target path."""
        ...
