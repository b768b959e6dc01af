from .cache import CacheStore
from .client import AsyncClient, Client
from .config import load_config_from_env, merge_headers, resolve
from .errors import (
    AbortedError,
    ApiError,
    ErrorKind,
    HttpStatusError,
    NetworkError,
    QuickcallError,
    TimeoutError_,
    TransportError,
    TransportTimeout,
)
from .executor import AsyncRequestExecutor, RequestExecutor
from .inflight import AsyncInFlightRegistry, InFlightRegistry
from .keys import CacheKey, canonical_body, make_key, resolve_url
from .ratelimit import AsyncSlidingWindowLimiter, SlidingWindowLimiter
from .retry import RetryPolicy, parse_retry_after
from .transports import AiohttpTransport, AsyncHttpxTransport, HttpxTransport, RequestsTransport
from .types import (
    ApiResponse,
    ClientConfig,
    EffectiveConfig,
    RateLimit,
    RequestDescriptor,
    RequestOptions,
    RetryConfig,
    TransportRequest,
    coerce_rate_limit,
)

__all__ = [
    "Client",
    "AsyncClient",
    "ClientConfig",
    "RequestOptions",
    "EffectiveConfig",
    "RequestDescriptor",
    "TransportRequest",
    "ApiResponse",
    "RateLimit",
    "RetryConfig",
    "resolve",
    "merge_headers",
    "load_config_from_env",
    "coerce_rate_limit",
    "CacheKey",
    "canonical_body",
    "make_key",
    "resolve_url",
    "CacheStore",
    "InFlightRegistry",
    "AsyncInFlightRegistry",
    "SlidingWindowLimiter",
    "AsyncSlidingWindowLimiter",
    "RetryPolicy",
    "parse_retry_after",
    "RequestExecutor",
    "AsyncRequestExecutor",
    "RequestsTransport",
    "HttpxTransport",
    "AsyncHttpxTransport",
    "AiohttpTransport",
    "QuickcallError",
    "ErrorKind",
    "ApiError",
    "NetworkError",
    "TimeoutError_",
    "HttpStatusError",
    "AbortedError",
    "TransportError",
    "TransportTimeout",
]
