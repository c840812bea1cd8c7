from __future__ import annotations
from typing import Mapping, Any
import logging
import httpx
from tenacity import retry, stop_after_attempt, wait_exponential_jitter, retry_if_exception_type
from windscribe_port_sync.application.ports.http_client_port import HttpClientPort, HttpResponse
from windscribe_port_sync.domain.errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/104.0.0.0 Safari/537.36"
)


class HttpTemporaryError(TransportError):
    pass


class HttpxClient(HttpClientPort):
    def __init__(self, timeout: float = 45.0, *, transport: httpx.BaseTransport | None = None) -> None:
        """HTTP client adapter backed by a persistent httpx.Client.

        - Never follows redirects: callers inspect 302s themselves
        - Keeps no cookie state; cookies travel in explicit Cookie headers
        - GETs are retried on transport errors and 5xx, POSTs are not
          (the provider's mutation endpoints are not idempotent)

        Args:
            timeout (float, optional): Timeout for requests. Defaults to 45.0.
            transport (httpx.BaseTransport | None, optional): Custom transport, used by tests.
        """
        self._client = httpx.Client(timeout=timeout, headers={
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
            "User-Agent": DEFAULT_USER_AGENT,
        }, follow_redirects=False, transport=transport)

    @retry(reraise=True, stop=stop_after_attempt(3), wait=wait_exponential_jitter(initial=1, max=8), retry=retry_if_exception_type(HttpTemporaryError))
    def get(self, url: str, *, headers: Mapping[str, str] | None = None) -> HttpResponse:
        """Gets the given URL.

        Args:
            url (str): URL to get.
            headers (Mapping[str, str] | None, optional): Headers to include. Defaults to None.

        Returns:
            HttpResponse: Response from the server.
        """
        try:
            resp = self._client.get(url, headers=headers)
        except httpx.HTTPError as e:
            raise HttpTemporaryError(f"GET {url} failed: {e}") from e
        logger.debug("GET %s -> %s", url, resp.status_code)
        if resp.status_code >= 500:
            raise HttpTemporaryError(f"GET {url} -> {resp.status_code}")
        return self._wrap(resp)

    def post(
        self,
        url: str,
        *,
        data: Mapping[str, Any] | None = None,
        json: Any | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> HttpResponse:
        """Posts a form (``data``) or a JSON body (``json``) to the given URL.

        Args:
            url (str): URL to post to.
            data (Mapping[str, Any] | None, optional): Form fields, url-encoded. Defaults to None.
            json (Any | None, optional): JSON body. Defaults to None.
            headers (Mapping[str, str] | None, optional): Headers to include. Defaults to None.
            timeout (float | None, optional): Overrides the client timeout for this call.

        Returns:
            HttpResponse: Response from the server.
        """
        kwargs: dict[str, Any] = {}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            resp = self._client.post(url, data=data, json=json, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise HttpTemporaryError(f"POST {url} failed: {e}") from e
        logger.debug("POST %s -> %s", url, resp.status_code)
        if resp.status_code >= 500:
            raise HttpTemporaryError(f"POST {url} -> {resp.status_code}")
        return self._wrap(resp)

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _wrap(resp: httpx.Response) -> HttpResponse:
        return HttpResponse(
            resp.status_code,
            resp.text,
            str(resp.url),
            resp.headers,
            set_cookies=resp.headers.get_list("set-cookie"),
            raw=resp,
        )
