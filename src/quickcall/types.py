from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Union

# Built-in fallbacks used when neither the call nor the client sets a value
DEFAULT_TIMEOUT = 10.0
DEFAULT_RETRIES = 3
DEFAULT_CACHE_TTL = 300.0


@dataclass(frozen=True)
class RateLimit:
    """At most `requests` admissions in any trailing `window` seconds."""

    requests: int
    window: float

    def __post_init__(self):
        if self.requests < 1:
            raise ValueError("rate limit requests must be >= 1")
        if self.window <= 0:
            raise ValueError("rate limit window must be > 0")

    @classmethod
    def parse(cls, value: str) -> "RateLimit":
        """Parse "N/W" (e.g. "5/1.5") into RateLimit(N, W)."""
        if "/" not in value:
            raise ValueError(f"rate limit must look like 'requests/window', got {value!r}")
        count, window = value.split("/", 1)
        return cls(requests=int(count.strip()), window=float(window.strip()))


def coerce_rate_limit(value: Union[object, None]) -> Union[RateLimit, None]:
    """Turn None | RateLimit | (requests, window) | "requests/window" into a RateLimit.

    Also accepts a mapping with "requests" and "window" keys.
    """
    if value is None or isinstance(value, RateLimit):
        return value
    if isinstance(value, str):
        return RateLimit.parse(value)
    if isinstance(value, Mapping):
        return RateLimit(requests=int(value["requests"]), window=float(value["window"]))
    if isinstance(value, (tuple, list)) and len(value) == 2:  # noqa: PLR2004
        return RateLimit(requests=int(value[0]), window=float(value[1]))
    raise TypeError("rate_limit must be None, RateLimit, (requests, window), a mapping or 'N/W'")


@dataclass(frozen=True)
class RetryConfig:
    # Exponential backoff: base * growth ** attempt, capped
    backoff_base: float = 0.25
    backoff_growth: float = 2.0
    backoff_cap: float = 5.0

    # Retry-After handling on retryable status responses
    respect_retry_after: bool = True
    retry_after_cap: float = 30.0


@dataclass(frozen=True)
class ClientConfig:
    """Instance-level defaults. Fields left as None fall back to built-in values."""

    base_url: Union[str, None] = None
    timeout: Union[float, None] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    retries: Union[int, None] = None
    cache: Union[bool, None] = None
    cache_ttl: Union[float, None] = None
    rate_limit: Union[RateLimit, None] = None
    # bumped every time a client setter produces a new config
    version: int = 0

    def __post_init__(self):
        _validate(self.timeout, self.retries, self.cache_ttl)
        object.__setattr__(self, "rate_limit", coerce_rate_limit(self.rate_limit))


@dataclass(frozen=True)
class RequestOptions:
    """Per-call overrides. `headers` are merged into the defaults, not replacing them."""

    timeout: Union[float, None] = None
    retries: Union[int, None] = None
    cache: Union[bool, None] = None
    cache_ttl: Union[float, None] = None
    headers: Union[Mapping[str, str], None] = None
    dedupe: Union[bool, None] = None

    def __post_init__(self):
        _validate(self.timeout, self.retries, self.cache_ttl)


@dataclass(frozen=True)
class EffectiveConfig:
    base_url: Union[str, None]
    headers: Mapping[str, str]
    timeout: float
    retries: int
    cache: bool
    cache_ttl: float
    rate_limit: Union[RateLimit, None]
    dedupe: Union[bool, None] = None


@dataclass(frozen=True)
class RequestDescriptor:
    method: str
    url: str
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)
    options: Union[RequestOptions, None] = None

    def __post_init__(self):
        object.__setattr__(self, "method", self.method.upper())


@dataclass(frozen=True)
class TransportRequest:
    """What a transport actually sends: resolved URL, merged headers, attempt timeout."""

    method: str
    url: str
    headers: Mapping[str, str]
    body: Any = None
    timeout: Union[float, None] = None


@dataclass(frozen=True)
class ApiResponse:
    """A decoded response.

    Cache hits and deduplicated callers receive the same instance. `headers`
    is a read-only view; `data` is shared as-is, so copy it before mutating.
    """

    data: Any
    status: int
    status_text: str = ""
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400  # noqa: PLR2004


def _validate(timeout, retries, cache_ttl):
    if timeout is not None and timeout <= 0:
        raise ValueError("timeout must be > 0")
    if retries is not None and retries < 0:
        raise ValueError("retries must be >= 0")
    if cache_ttl is not None and cache_ttl < 0:
        raise ValueError("cache_ttl must be >= 0")
