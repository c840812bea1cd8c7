from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime

# =========================
# Session
# =========================
@dataclass(frozen=True)
class SessionCookie:
    value: str
    expires_at: datetime


@dataclass(frozen=True)
class CsrfInfo:
    csrf_time: int
    csrf_token: str


# =========================
# Port forwarding
# =========================
@dataclass(frozen=True)
class PortForwardingState:
    """Ephemeral port lease as shown on the port forwarding page.

    ``lease_start == 0`` means there is no active lease. When two ports are
    present they are the external and internal port and must be equal.
    """

    ports: tuple[int, ...] = ()
    lease_start: int = 0

    @property
    def is_active(self) -> bool:
        return self.lease_start != 0

    @property
    def is_mismatched(self) -> bool:
        return len(self.ports) == 2 and self.ports[0] != self.ports[1]

    @property
    def port(self) -> int | None:
        return self.ports[0] if self.ports else None


@dataclass(frozen=True)
class ForwardedPort:
    port: int
    expires_at: datetime


# =========================
# Captcha
# =========================
@dataclass(frozen=True)
class CaptchaChallenge:
    background: bytes | str
    top: int
    slider: bytes | str | None = None

    @property
    def has_distinct_slider(self) -> bool:
        return bool(self.slider) and self.slider != self.background


@dataclass(frozen=True)
class CaptchaSolution:
    offset: int
    trail: tuple[tuple[int, int], ...] = field(default_factory=tuple)

    @property
    def trail_x(self) -> list[int]:
        return [x for x, _ in self.trail]

    @property
    def trail_y(self) -> list[int]:
        return [y for _, y in self.trail]

    def trail_json(self) -> str:
        return json.dumps({"x": self.trail_x, "y": self.trail_y}, separators=(",", ":"))
