"""
HTTP transport
Minimal request/response contract used for provider calls and redirect
resolution, with a requests-backed default implementation.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from gearshelf.errors import TransportError

BROWSER_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8',
    'Accept-Language': 'ja,en-US;q=0.9,en;q=0.8',
    'Cache-Control': 'no-cache',
}


@dataclass
class HttpResponse:
    status: int
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    text: str = ''

    def __post_init__(self):
        self.headers = {k.lower(): v for k, v in self.headers.items()}

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status < 400

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    def json(self) -> Any:
        return json.loads(self.text)


class HttpTransport(ABC):
    """
    Anything that can send a request and hand back status, headers and body.

    Implementations raise TransportError for connection failures and
    timeouts; HTTP error statuses are returned, not raised.
    """

    @abstractmethod
    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
        allow_redirects: bool = True,
        read_body: bool = True,
    ) -> HttpResponse:
        pass

    async def get(self, url: str, **kwargs) -> HttpResponse:
        return await self.request('GET', url, **kwargs)

    async def post(self, url: str, body: str, **kwargs) -> HttpResponse:
        return await self.request('POST', url, body=body, **kwargs)


class RequestsTransport(HttpTransport):
    """Runs blocking requests calls in a worker thread."""

    def __init__(self, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
        allow_redirects: bool = True,
        read_body: bool = True,
    ) -> HttpResponse:
        return await asyncio.to_thread(
            self._send, method, url, headers, body, allow_redirects, read_body
        )

    def _send(self, method, url, headers, body, allow_redirects, read_body) -> HttpResponse:
        try:
            # stream=True leaves the body unread when only headers are needed
            response = self.session.request(
                method,
                url,
                headers=headers or BROWSER_HEADERS,
                data=body.encode('utf-8') if body is not None else None,
                allow_redirects=allow_redirects,
                timeout=self.timeout,
                stream=not read_body,
            )
        except requests.exceptions.Timeout as e:
            raise TransportError(f"timed out after {self.timeout}s: {url}") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"request failed: {str(e)[:100]}") from e

        try:
            text = response.text if read_body else ''
        except requests.exceptions.RequestException as e:
            raise TransportError(f"failed reading response body: {str(e)[:100]}") from e
        finally:
            response.close()

        return HttpResponse(
            status=response.status_code,
            url=response.url or url,
            headers=dict(response.headers),
            text=text,
        )
