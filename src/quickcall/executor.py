"""Request execution: cache, in-flight dedup, throttling and retry around a transport.

Per logical request::

    key -> cache hit? -> join in-flight or start -> [admit -> attempt]* -> cache write

Only GET/HEAD responses are cached, and only when the effective config
enables caching. Dedup covers GET/HEAD/OPTIONS unless the call says
otherwise via ``dedupe``. Every attempt, including retries, goes through
the rate limiter again. The transport call never runs under a lock.
"""

import asyncio
import concurrent.futures
import logging
import threading
import time
from typing import Callable, Union

from .cache import CacheStore
from .config import merge_headers
from .errors import (
    AbortedError,
    ApiError,
    HttpStatusError,
    NetworkError,
    TimeoutError_,
    TransportError,
    TransportTimeout,
)
from .inflight import AsyncInFlightRegistry, InFlightRegistry
from .keys import CacheKey, make_key, resolve_url
from .ratelimit import AsyncSlidingWindowLimiter, SlidingWindowLimiter
from .retry import RetryPolicy
from .transports import AsyncTransport, Transport
from .types import ApiResponse, EffectiveConfig, RequestDescriptor, TransportRequest

CACHEABLE_METHODS = frozenset({"GET", "HEAD"})
DEDUPE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

KeyFunction = Callable[[RequestDescriptor, Union[str, None]], CacheKey]


def _error_message(response: ApiResponse) -> str:
    prefix = f"HTTP {response.status} {response.status_text}".strip()
    data = response.data
    if isinstance(data, dict):
        detail = data.get("message") or data.get("error") or data.get("detail") or ""
    elif isinstance(data, str):
        detail = data[:200]
    else:
        detail = ""
    return f"{prefix}: {detail}" if detail else prefix


# ---------- Base executor (shared logic; synchronization handled by subclasses) ----------


class _Executor:
    def __init__(
        self,
        transport: Union[Transport, AsyncTransport],
        cache: Union[CacheStore, None],
        retry_policy: Union[RetryPolicy, None],
        key_fn: Union[KeyFunction, None],
    ):
        self.transport = transport
        self.cache = cache if cache is not None else CacheStore()
        self.retry_policy = retry_policy or RetryPolicy()
        self.key_fn = key_fn or make_key
        self._logger = logging.getLogger("quickcall")

    def _cache_eligible(self, descriptor: RequestDescriptor, config: EffectiveConfig) -> bool:
        return bool(config.cache) and descriptor.method in CACHEABLE_METHODS

    def _dedupe_eligible(self, descriptor: RequestDescriptor, config: EffectiveConfig) -> bool:
        if config.dedupe is not None:
            return config.dedupe
        return descriptor.method in DEDUPE_METHODS

    def _prepare(self, descriptor: RequestDescriptor, config: EffectiveConfig) -> TransportRequest:
        return TransportRequest(
            method=descriptor.method,
            url=resolve_url(config.base_url, descriptor.url),
            headers=merge_headers(config.headers, descriptor.headers),
            body=descriptor.body,
            timeout=config.timeout,
        )

    def _translate(self, exc: TransportError, request: TransportRequest) -> ApiError:
        if isinstance(exc, TransportTimeout):
            return TimeoutError_(
                f"{request.method} {request.url} timed out after {request.timeout}s"
            )
        return NetworkError(f"{request.method} {request.url} failed: {exc}")

    def _check_status(self, response: ApiResponse) -> ApiResponse:
        if response.status < 400:  # noqa: PLR2004
            return response
        raise HttpStatusError(_error_message(response), status=response.status, response=response)

    def _on_failure(
        self, err: ApiError, request: TransportRequest, attempt: int, retries: int
    ) -> Union[float, None]:
        """Return the backoff delay if `err` should be retried, else None."""
        if not self.retry_policy.should_retry(err, attempt, retries):
            if attempt and self.retry_policy.retryable(err):
                self._logger.warning(
                    f"giving up method={request.method} url={request.url} "
                    f"attempts={attempt + 1} error={err.kind.value}"
                )
            return None
        delay = self.retry_policy.delay_for(attempt, err)
        self._logger.warning(
            f"retrying method={request.method} url={request.url} error={err.kind.value} "
            f"status={err.status} retry={attempt + 1}/{retries} delay={delay:.2f}s"
        )
        return delay


# ---------- Threaded executor ----------


class RequestExecutor(_Executor):
    """Blocking executor, safe to call from many threads at once.

    Args:
        transport: Object with ``send(TransportRequest) -> ApiResponse``.
        cache: Shared response cache (a private one is created if omitted).
        limiter: Optional shared sliding-window limiter.
        retry_policy: Backoff/retry decisions.
        key_fn: Override for cache/dedup key derivation.
        cancel: Event that, once set, aborts queued throttle waits, pending
            backoff sleeps and new attempts.
    """

    def __init__(
        self,
        transport: Transport,
        cache: Union[CacheStore, None] = None,
        limiter: Union[SlidingWindowLimiter, None] = None,
        retry_policy: Union[RetryPolicy, None] = None,
        key_fn: Union[KeyFunction, None] = None,
        inflight: Union[InFlightRegistry, None] = None,
        cancel: Union[threading.Event, None] = None,
    ):
        super().__init__(transport, cache, retry_policy, key_fn)
        self.limiter = limiter
        self.inflight = inflight or InFlightRegistry()
        self._cancel = cancel

    def execute(self, descriptor: RequestDescriptor, config: EffectiveConfig) -> ApiResponse:
        key = self.key_fn(descriptor, config.base_url)
        cacheable = self._cache_eligible(descriptor, config)
        if cacheable:
            hit = self.cache.get(key)
            if hit is not None:
                self._logger.debug(f"cache hit method={key.method} url={key.url}")
                return hit
        if self._dedupe_eligible(descriptor, config):
            return self.inflight.join_or_start(
                key, lambda: self._run(descriptor, config, key, cacheable)
            )
        return self._run(descriptor, config, key, cacheable)

    def _run(self, descriptor, config, key, cacheable) -> ApiResponse:
        request = self._prepare(descriptor, config)
        attempt = 0
        while True:
            self._raise_if_cancelled()
            if self.limiter is not None:
                self.limiter.admit(self._cancel)
            try:
                response = self._attempt(request, attempt)
            except ApiError as err:
                delay = self._on_failure(err, request, attempt, config.retries)
                if delay is None:
                    raise
                self._sleep(delay)
                attempt += 1
                continue
            if cacheable:
                self.cache.set(key, response, config.cache_ttl)
            return response

    def _attempt(self, request: TransportRequest, attempt: int) -> ApiResponse:
        self._logger.debug(
            f"req start method={request.method} url={request.url} attempt={attempt + 1}"
        )
        try:
            response = self._send_with_deadline(request)
        except TransportError as exc:
            raise self._translate(exc, request) from exc
        self._logger.debug(
            f"req done method={request.method} url={request.url} status={response.status}"
        )
        return self._check_status(response)

    def _send_with_deadline(self, request: TransportRequest) -> ApiResponse:
        """Run ``transport.send`` on a worker thread, bounded by ``request.timeout``.

        The bound covers the whole call, not each connect or read. On expiry
        the worker is abandoned and its eventual result discarded.
        """
        if request.timeout is None:
            return self.transport.send(request)
        future: concurrent.futures.Future = concurrent.futures.Future()

        def _work():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self.transport.send(request))
            except Exception as exc:
                future.set_exception(exc)

        threading.Thread(target=_work, name="quickcall-attempt", daemon=True).start()
        done, _ = concurrent.futures.wait([future], timeout=request.timeout)
        if not done:
            raise TimeoutError_(
                f"{request.method} {request.url} timed out after {request.timeout}s"
            )
        return future.result()

    def _raise_if_cancelled(self) -> None:
        if self._cancel is not None and self._cancel.is_set():
            raise AbortedError("request aborted: client closed")

    def _sleep(self, delay: float) -> None:
        if self._cancel is None:
            time.sleep(delay)
        elif self._cancel.wait(delay):
            raise AbortedError("request aborted during backoff: client closed")


# ---------- Async executor ----------


class AsyncRequestExecutor(_Executor):
    """Executor for one asyncio event loop.

    Each attempt is bounded by ``config.timeout`` via :func:`asyncio.wait_for`.
    Backoff and throttle waits are plain awaits, so cancelling the calling
    task interrupts them.
    """

    def __init__(
        self,
        transport: AsyncTransport,
        cache: Union[CacheStore, None] = None,
        limiter: Union[AsyncSlidingWindowLimiter, None] = None,
        retry_policy: Union[RetryPolicy, None] = None,
        key_fn: Union[KeyFunction, None] = None,
        inflight: Union[AsyncInFlightRegistry, None] = None,
    ):
        super().__init__(transport, cache, retry_policy, key_fn)
        self.limiter = limiter
        self.inflight = inflight or AsyncInFlightRegistry()

    async def execute(self, descriptor: RequestDescriptor, config: EffectiveConfig) -> ApiResponse:
        key = self.key_fn(descriptor, config.base_url)
        cacheable = self._cache_eligible(descriptor, config)
        if cacheable:
            hit = self.cache.get(key)
            if hit is not None:
                self._logger.debug(f"cache hit method={key.method} url={key.url}")
                return hit
        if self._dedupe_eligible(descriptor, config):
            return await self.inflight.join_or_start(
                key, lambda: self._run(descriptor, config, key, cacheable)
            )
        return await self._run(descriptor, config, key, cacheable)

    async def _run(self, descriptor, config, key, cacheable) -> ApiResponse:
        request = self._prepare(descriptor, config)
        attempt = 0
        while True:
            if self.limiter is not None:
                await self.limiter.admit()
            try:
                response = await self._attempt(request, attempt)
            except ApiError as err:
                delay = self._on_failure(err, request, attempt, config.retries)
                if delay is None:
                    raise
                await asyncio.sleep(delay)
                attempt += 1
                continue
            if cacheable:
                self.cache.set(key, response, config.cache_ttl)
            return response

    async def _attempt(self, request: TransportRequest, attempt: int) -> ApiResponse:
        self._logger.debug(
            f"req start method={request.method} url={request.url} attempt={attempt + 1}"
        )
        try:
            response = await asyncio.wait_for(self.transport.send(request), timeout=request.timeout)
        except asyncio.TimeoutError as exc:
            raise TimeoutError_(
                f"{request.method} {request.url} timed out after {request.timeout}s"
            ) from exc
        except TransportError as exc:
            raise self._translate(exc, request) from exc
        self._logger.debug(
            f"req done method={request.method} url={request.url} status={response.status}"
        )
        return self._check_status(response)
