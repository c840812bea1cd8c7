from __future__ import annotations

from typing import Protocol


class TorrentClientPort(Protocol):
    """Downstream torrent client whose listening port follows the VPN port."""

    def get_port(self) -> int: ...
    def update_port(self, port: int) -> None: ...
