from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any, Protocol


class HttpResponse:
    def __init__(
        self,
        status_code: int,
        text: str,
        url: str,
        headers: Mapping[str, str],
        *,
        set_cookies: Sequence[str] = (),
        raw: Any | None = None,
    ) -> None:
        self.status_code = status_code
        self.text = text
        self.url = url
        self.headers = dict(headers)
        # Every Set-Cookie header line; ``headers`` folds duplicates together
        self.set_cookies = list(set_cookies)
        self._raw = raw

    def json(self) -> Any:
        if self._raw is not None and hasattr(self._raw, "json"):
            return self._raw.json()
        return json.loads(self.text)


class HttpClientPort(Protocol):
    """Minimal blocking HTTP client abstraction. Redirects are never followed."""

    def get(
        self, url: str, *, headers: Mapping[str, str] | None = None
    ) -> HttpResponse: ...
    def post(
        self,
        url: str,
        *,
        data: Mapping[str, Any] | None = None,
        json: Any | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> HttpResponse: ...
