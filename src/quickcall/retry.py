import email.utils
import math
import time
from collections.abc import Mapping
from typing import Union

from .errors import ApiError, ErrorKind, HttpStatusError
from .types import RetryConfig


def parse_retry_after(headers: Mapping[str, str], now: Union[float, None] = None) -> float:
    """Return the Retry-After delay in seconds, or 0.0 if absent/unparseable.

    Accepts both delta-seconds and an HTTP-date (RFC 7231).
    """
    ra = None
    for k, v in headers.items():
        if k.lower() == "retry-after":
            ra = v
            break
    if ra is None:
        return 0.0
    try:
        return max(0.0, float(ra))
    except ValueError:
        pass
    try:
        ts = email.utils.parsedate_to_datetime(ra)
    except (TypeError, ValueError):
        return 0.0
    if ts is None:
        return 0.0
    now = time.time() if now is None else now
    # Round up so short delays are not truncated to zero
    return max(0.0, float(math.ceil(ts.timestamp() - now)))


class RetryPolicy:
    """Decides whether a failed attempt is retried and how long to wait first.

    Only transient failures are retried: network errors, timeouts and HTTP
    5xx. Client errors (4xx) and cancellations surface immediately. The
    delay before retry number `attempt` (0-based) is
    ``min(cap, base * growth ** attempt)``, stretched to honour a
    Retry-After header on the failed response when one is present.
    """

    def __init__(self, config: Union[RetryConfig, None] = None):
        self.config = config or RetryConfig()

    def retryable(self, error: BaseException) -> bool:
        if not isinstance(error, ApiError):
            return False
        if error.kind in (ErrorKind.NETWORK, ErrorKind.TIMEOUT):
            return True
        if isinstance(error, HttpStatusError):
            return error.retryable
        return False

    def should_retry(self, error: BaseException, attempt: int, max_retries: int) -> bool:
        return attempt < max_retries and self.retryable(error)

    def delay_for(self, attempt: int, error: Union[BaseException, None] = None) -> float:
        c = self.config
        delay = min(c.backoff_cap, c.backoff_base * (c.backoff_growth ** attempt))
        response = getattr(error, "response", None)
        if c.respect_retry_after and response is not None:
            retry_after = parse_retry_after(response.headers)
            if retry_after > 0:
                delay = max(delay, min(c.retry_after_cap, retry_after))
        return delay
