"""Transport adapters for requests, httpx and aiohttp.

A transport sends one :class:`TransportRequest` and returns an
:class:`ApiResponse` for *any* status code; it raises
:class:`TransportError` (or :class:`TransportTimeout`) only when no
response was obtained. Retries, caching and throttling happen above it.

Each adapter accepts an existing session/client so connection pools can be
shared, and only closes sessions it created itself.
"""

import asyncio
import json
from typing import Any, Protocol, Union

from .errors import TransportError, TransportTimeout
from .types import ApiResponse, TransportRequest


class Transport(Protocol):
    def send(self, request: TransportRequest) -> ApiResponse: ...


class AsyncTransport(Protocol):
    async def send(self, request: TransportRequest) -> ApiResponse: ...


def decode_body(content: bytes, encoding: Union[str, None] = None) -> Any:
    """JSON-decode `content` if possible, else return text; None when empty."""
    if not content:
        return None
    try:
        return json.loads(content)
    except ValueError:
        return content.decode(encoding or "utf-8", errors="replace")


def _body_kwargs(body: Any, raw_name: str) -> dict[str, Any]:
    if body is None:
        return {}
    if isinstance(body, (str, bytes)):
        return {raw_name: body}
    return {"json": body}


# ---------- requests (sync) ----------


class RequestsTransport:
    def __init__(self, session=None):
        self.session = session
        self._own_session = session is None

    def _get_session(self):
        if self.session is None:
            import requests  # noqa: PLC0415

            self.session = requests.Session()
        return self.session

    def send(self, request: TransportRequest) -> ApiResponse:
        import requests  # noqa: PLC0415

        sess = self._get_session()
        try:
            resp = sess.request(
                request.method,
                request.url,
                headers=dict(request.headers),
                timeout=request.timeout,
                **_body_kwargs(request.body, "data"),
            )
        except requests.Timeout as e:
            raise TransportTimeout(str(e)) from e
        except requests.RequestException as e:
            raise TransportError(str(e)) from e
        return ApiResponse(
            data=decode_body(resp.content, resp.encoding),
            status=resp.status_code,
            status_text=resp.reason or "",
            headers=dict(resp.headers),
        )

    def close(self):
        if self._own_session and self.session is not None:
            self.session.close()
            self.session = None


# ---------- httpx (sync + async) ----------


def _from_httpx(resp) -> ApiResponse:
    return ApiResponse(
        data=decode_body(resp.content, resp.encoding),
        status=resp.status_code,
        status_text=resp.reason_phrase or "",
        headers=dict(resp.headers),
    )


class HttpxTransport:
    def __init__(self, client=None):
        self.client = client
        self._own_client = client is None

    def send(self, request: TransportRequest) -> ApiResponse:
        import httpx  # noqa: PLC0415

        if self.client is None:
            self.client = httpx.Client()
        try:
            resp = self.client.request(
                request.method,
                request.url,
                headers=dict(request.headers),
                timeout=request.timeout,
                **_body_kwargs(request.body, "content"),
            )
        except httpx.TimeoutException as e:
            raise TransportTimeout(str(e)) from e
        except httpx.RequestError as e:
            raise TransportError(str(e)) from e
        return _from_httpx(resp)

    def close(self):
        if self._own_client and self.client is not None:
            self.client.close()
            self.client = None


class AsyncHttpxTransport:
    def __init__(self, client=None):
        self.client = client
        self._own_client = client is None

    async def send(self, request: TransportRequest) -> ApiResponse:
        import httpx  # noqa: PLC0415

        if self.client is None:
            self.client = httpx.AsyncClient()
        try:
            resp = await self.client.request(
                request.method,
                request.url,
                headers=dict(request.headers),
                timeout=request.timeout,
                **_body_kwargs(request.body, "content"),
            )
        except httpx.TimeoutException as e:
            raise TransportTimeout(str(e)) from e
        except httpx.RequestError as e:
            raise TransportError(str(e)) from e
        return _from_httpx(resp)

    async def aclose(self):
        if self._own_client and self.client is not None:
            await self.client.aclose()
            self.client = None


# ---------- aiohttp (async) ----------


class AiohttpTransport:
    def __init__(self, session=None):
        self.session = session
        self._own_session = session is None

    async def send(self, request: TransportRequest) -> ApiResponse:
        import aiohttp  # noqa: PLC0415

        if self.session is None:
            self.session = aiohttp.ClientSession()
        kwargs = _body_kwargs(request.body, "data")
        if request.timeout is not None:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=request.timeout)
        try:
            resp = await self.session.request(
                request.method, request.url, headers=dict(request.headers), **kwargs
            )
            # read() releases the connection back to the pool
            content = await resp.read()
        except asyncio.TimeoutError as e:
            raise TransportTimeout(str(e) or "aiohttp request timed out") from e
        except aiohttp.ClientError as e:
            raise TransportError(str(e)) from e
        return ApiResponse(
            data=decode_body(content, getattr(resp, "charset", None)),
            status=resp.status,
            status_text=getattr(resp, "reason", None) or "",
            headers=dict(resp.headers),
        )

    async def aclose(self):
        if self._own_session and self.session is not None:
            await self.session.close()
            self.session = None
