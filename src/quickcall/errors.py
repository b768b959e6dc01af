"""Exception hierarchy for quickcall.

Callers branch on :attr:`ApiError.kind` (or the concrete subclass) and
:attr:`ApiError.status`::

    QuickcallError
    +-- ApiError
    |   +-- NetworkError      (kind=NETWORK, retryable)
    |   +-- TimeoutError_     (kind=TIMEOUT, retryable)
    |   +-- HttpStatusError   (kind=HTTP_STATUS, retryable for 5xx only)
    |   +-- AbortedError      (kind=ABORTED, never retried)
    +-- TransportError        (raised by transports; translated by the executor)
        +-- TransportTimeout
"""

import enum
from typing import Union

from .types import ApiResponse


class ErrorKind(enum.Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    ABORTED = "aborted"


class QuickcallError(Exception):
    """Base class for every error raised by quickcall."""


class ApiError(QuickcallError):
    """Final outcome of a failed request.

    Args:
        message: Human-readable description.
        status: HTTP status when a response was obtained.
        response: The error response, for HTTP status errors.
    """

    kind: ErrorKind = ErrorKind.NETWORK

    def __init__(
        self,
        message: str,
        status: Union[int, None] = None,
        response: Union[ApiResponse, None] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.response = response

    @property
    def cause(self) -> Union[BaseException, None]:
        return self.__cause__

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value}, status={self.status}, "
            f"message={self.message!r})"
        )


class NetworkError(ApiError):
    """No response was obtained (DNS, refused connection, reset, ...)."""

    kind = ErrorKind.NETWORK


class TimeoutError_(ApiError):
    """An attempt exceeded its configured timeout.

    Named with a trailing underscore to avoid shadowing the built-in
    ``TimeoutError``.
    """

    kind = ErrorKind.TIMEOUT


class HttpStatusError(ApiError):
    """The server answered with a 4xx or 5xx status."""

    kind = ErrorKind.HTTP_STATUS

    @property
    def retryable(self) -> bool:
        return self.status is not None and self.status >= 500  # noqa: PLR2004


class AbortedError(ApiError):
    """The request was cancelled or its client closed before it settled."""

    kind = ErrorKind.ABORTED


class TransportError(QuickcallError):
    """Raised by a transport when no response could be obtained."""


class TransportTimeout(TransportError):
    """Raised by a transport when its own timeout fired."""
