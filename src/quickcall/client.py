import dataclasses
import logging
import threading
from collections.abc import Mapping
from typing import Any, Union

from .cache import CacheStore
from .config import load_config_from_env, merge_headers, resolve
from .errors import AbortedError
from .executor import AsyncRequestExecutor, KeyFunction, RequestExecutor
from .inflight import AsyncInFlightRegistry, InFlightRegistry
from .ratelimit import AsyncSlidingWindowLimiter, SlidingWindowLimiter
from .retry import RetryPolicy
from .transports import AsyncHttpxTransport, AsyncTransport, RequestsTransport, Transport
from .types import (
    ApiResponse,
    ClientConfig,
    RequestDescriptor,
    RequestOptions,
    RetryConfig,
)

_CONFIG_FIELDS = {"base_url", "timeout", "headers", "retries", "cache", "cache_ttl", "rate_limit"}


def _build_config(config: Union[ClientConfig, None], base_url, kwargs: dict) -> ClientConfig:
    unknown = set(kwargs) - _CONFIG_FIELDS
    if unknown:
        raise TypeError(f"unexpected client options: {', '.join(sorted(unknown))}")
    fields = dict(kwargs)
    if base_url is not None:
        fields["base_url"] = base_url
    if "headers" in fields:
        fields["headers"] = dict(fields["headers"] or {})
    if config is None:
        return ClientConfig(**fields)
    return dataclasses.replace(config, **fields)


# ---------- Base client (config ownership shared by both flavours) ----------


class _BaseClient:
    def __init__(
        self,
        config: ClientConfig,
        cache_max_entries: Union[int, None],
        log_level: Union[int, None],
    ):
        self._config = config
        self._config_lock = threading.Lock()
        self.cache = CacheStore(max_entries=cache_max_entries)
        self._logger = logging.getLogger("quickcall")
        if log_level is not None:
            self._logger.setLevel(log_level)

    @property
    def config(self) -> ClientConfig:
        """Current instance defaults. Each setter call replaces this with a new version."""
        return self._config

    def set_base_url(self, url: Union[str, None]) -> ClientConfig:
        return self._update(base_url=url)

    def set_default_headers(self, headers: Mapping[str, str]) -> ClientConfig:
        """Merge `headers` into the current default headers."""
        with self._config_lock:
            current = self._config
            self._config = dataclasses.replace(
                current,
                headers=merge_headers(current.headers, headers),
                version=current.version + 1,
            )
            return self._config

    def clear_cache(self) -> None:
        self.cache.clear()

    def _update(self, **changes) -> ClientConfig:
        with self._config_lock:
            self._config = dataclasses.replace(
                self._config, version=self._config.version + 1, **changes
            )
            return self._config

    def _describe(self, method: str, path: str, body: Any, options: dict):
        opts = RequestOptions(**options) if options else None
        # snapshot: later setter calls do not affect this request
        config = self._config
        descriptor = RequestDescriptor(method=method, url=path, body=body, options=opts)
        return descriptor, resolve(config, opts)


# ---------- Sync client (requests by default) ----------


class Client(_BaseClient):
    """Blocking HTTP client with caching, dedup, throttling and retries.

    Args:
        base_url: Prefix for relative paths.
        config: A ClientConfig; keyword options below override its fields.
        transport: Any object with ``send(TransportRequest) -> ApiResponse``.
            Defaults to a :class:`~quickcall.transports.RequestsTransport`.
        retry_config: Backoff settings.
        cache_max_entries: Optional bound on cached responses.
        key_fn: Override for cache/dedup key derivation.
        log_level: Level applied to the "quickcall" logger.
        kwargs: ClientConfig fields (timeout, headers, retries, cache,
            cache_ttl, rate_limit).

    `timeout` bounds each whole attempt; a transport still running at the
    deadline is abandoned on its worker thread and the attempt fails with
    :class:`~quickcall.errors.TimeoutError_`.

    Example::

        with Client("https://api.example.com", cache=True, rate_limit=(5, 1.0)) as api:
            users = api.get("/users").data
    """

    def __init__(
        self,
        base_url: Union[str, None] = None,
        *,
        config: Union[ClientConfig, None] = None,
        transport: Union[Transport, None] = None,
        retry_config: Union[RetryConfig, None] = None,
        cache_max_entries: Union[int, None] = None,
        key_fn: Union[KeyFunction, None] = None,
        log_level: Union[int, None] = None,
        **kwargs,
    ):
        super().__init__(_build_config(config, base_url, kwargs), cache_max_entries, log_level)
        if transport is None:
            transport = RequestsTransport()
            self._own_transport = True
        else:
            self._own_transport = False
        self.transport = transport
        self._closed = threading.Event()
        limit = self._config.rate_limit
        self.limiter = SlidingWindowLimiter(limit, cancel=self._closed) if limit else None
        self.executor = RequestExecutor(
            transport,
            cache=self.cache,
            limiter=self.limiter,
            retry_policy=RetryPolicy(retry_config),
            key_fn=key_fn,
            inflight=InFlightRegistry(),
            cancel=self._closed,
        )

    @classmethod
    def from_env(cls, prefix: str = "QUICKCALL_", env_path: Union[str, None] = None, **kwargs):
        """Build a client from QUICKCALL_* environment variables (see load_config_from_env)."""
        config_kwargs = {k: kwargs.pop(k) for k in list(kwargs) if k in _CONFIG_FIELDS}
        config = load_config_from_env(prefix=prefix, env_path=env_path, **config_kwargs)
        return cls(config=config, **kwargs)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self):
        """Abort pending waits and close the transport if this client created it."""
        self._closed.set()
        if self._own_transport and hasattr(self.transport, "close"):
            self.transport.close()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def request(self, method: str, path: str, body: Any = None, **options) -> ApiResponse:
        if self._closed.is_set():
            raise AbortedError("client is closed")
        descriptor, effective = self._describe(method, path, body, options)
        return self.executor.execute(descriptor, effective)

    def get(self, path: str, **options) -> ApiResponse:
        return self.request("GET", path, **options)

    def head(self, path: str, **options) -> ApiResponse:
        return self.request("HEAD", path, **options)

    def post(self, path: str, body: Any = None, **options) -> ApiResponse:
        return self.request("POST", path, body, **options)

    def put(self, path: str, body: Any = None, **options) -> ApiResponse:
        return self.request("PUT", path, body, **options)

    def patch(self, path: str, body: Any = None, **options) -> ApiResponse:
        return self.request("PATCH", path, body, **options)

    def delete(self, path: str, body: Any = None, **options) -> ApiResponse:
        return self.request("DELETE", path, body, **options)


# ---------- Async client (httpx by default) ----------


class AsyncClient(_BaseClient):
    """Asyncio counterpart of :class:`Client`.

    Defaults to an :class:`~quickcall.transports.AsyncHttpxTransport`; pass
    ``transport=AiohttpTransport(session)`` to reuse an aiohttp session.
    Cancelling a calling task aborts its throttle wait, backoff or transport
    call; if that task owned an in-flight request, joined callers receive
    :class:`~quickcall.errors.AbortedError`.
    """

    def __init__(
        self,
        base_url: Union[str, None] = None,
        *,
        config: Union[ClientConfig, None] = None,
        transport: Union[AsyncTransport, None] = None,
        retry_config: Union[RetryConfig, None] = None,
        cache_max_entries: Union[int, None] = None,
        key_fn: Union[KeyFunction, None] = None,
        log_level: Union[int, None] = None,
        **kwargs,
    ):
        super().__init__(_build_config(config, base_url, kwargs), cache_max_entries, log_level)
        if transport is None:
            transport = AsyncHttpxTransport()
            self._own_transport = True
        else:
            self._own_transport = False
        self.transport = transport
        self._closed = False
        limit = self._config.rate_limit
        self.limiter = AsyncSlidingWindowLimiter(limit) if limit else None
        self.executor = AsyncRequestExecutor(
            transport,
            cache=self.cache,
            limiter=self.limiter,
            retry_policy=RetryPolicy(retry_config),
            key_fn=key_fn,
            inflight=AsyncInFlightRegistry(),
        )

    @classmethod
    def from_env(cls, prefix: str = "QUICKCALL_", env_path: Union[str, None] = None, **kwargs):
        config_kwargs = {k: kwargs.pop(k) for k in list(kwargs) if k in _CONFIG_FIELDS}
        config = load_config_from_env(prefix=prefix, env_path=env_path, **config_kwargs)
        return cls(config=config, **kwargs)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
        return False

    async def close(self):
        self._closed = True
        if self._own_transport and hasattr(self.transport, "aclose"):
            await self.transport.aclose()

    @property
    def closed(self) -> bool:
        return self._closed

    async def request(self, method: str, path: str, body: Any = None, **options) -> ApiResponse:
        if self._closed:
            raise AbortedError("client is closed")
        descriptor, effective = self._describe(method, path, body, options)
        return await self.executor.execute(descriptor, effective)

    async def get(self, path: str, **options) -> ApiResponse:
        return await self.request("GET", path, **options)

    async def head(self, path: str, **options) -> ApiResponse:
        return await self.request("HEAD", path, **options)

    async def post(self, path: str, body: Any = None, **options) -> ApiResponse:
        return await self.request("POST", path, body, **options)

    async def put(self, path: str, body: Any = None, **options) -> ApiResponse:
        return await self.request("PUT", path, body, **options)

    async def patch(self, path: str, body: Any = None, **options) -> ApiResponse:
        return await self.request("PATCH", path, body, **options)

    async def delete(self, path: str, body: Any = None, **options) -> ApiResponse:
        return await self.request("DELETE", path, body, **options)
