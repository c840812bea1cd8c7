from __future__ import annotations

import logging
from pathlib import Path

from windscribe_port_sync.application.ports.container_port import PortExportPort

logger = logging.getLogger(__name__)


class GluetunPortExporter(PortExportPort):
    """Writes iptables rules opening the forwarded port on the VPN interface.

    Gluetun runs the file as post-rules on its next start.
    """

    def __init__(self, path: str, iface: str = "tun0") -> None:
        self.path = Path(path)
        self.iface = iface

    def render(self, port: int) -> str:
        return "\n".join(
            f"iptables -A INPUT -i {self.iface} -p {proto} --dport {port} -j ACCEPT" for proto in ("tcp", "udp")
        )

    def write(self, port: int) -> str:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(self.render(port))
        logger.info("New port %d exported to file: %s with iface: %s", port, self.path, self.iface)
        return str(self.path)
