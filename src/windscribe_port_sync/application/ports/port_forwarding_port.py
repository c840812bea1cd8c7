from __future__ import annotations

from typing import Protocol

from windscribe_port_sync.domain.model import ForwardedPort


class PortForwardingPort(Protocol):
    """Provider-side port reconciliation as seen by the orchestrator."""

    def update_port(self) -> ForwardedPort: ...
    def get_port(self) -> ForwardedPort | None: ...
