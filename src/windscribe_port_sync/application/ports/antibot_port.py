from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass(frozen=True)
class ClearanceResult:
    cookies: dict[str, str] = field(default_factory=dict)
    user_agent: str = ""


class AntiBotSolverPort(Protocol):
    """Browser-backed service that clears the provider's anti-bot challenge."""

    def fetch_page(self, url: str, *, timeout_ms: int) -> ClearanceResult:
        """Loads ``url`` in a real browser and returns the resulting cookies.

        Raises AntiBotFailure when the solver reports anything but success.
        """
        ...
