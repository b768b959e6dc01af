import asyncio

import pytest

from quickcall import ApiResponse


def ok(data=None, status=200, headers=None):
    return ApiResponse(
        data={"ok": True} if data is None else data,
        status=status,
        status_text="OK" if status < 400 else "Error",  # noqa: PLR2004
        headers=headers or {},
    )


class FakeTransport:
    """Scripted transport: pops `responses` in order (exceptions are raised), then repeats `default`."""

    def __init__(self):
        self.calls = []
        self.responses = []
        self.default = ok()

    def _next(self, request):
        self.calls.append(request)
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, BaseException):
            raise item
        return item

    def send(self, request):
        return self._next(request)


class AsyncFakeTransport(FakeTransport):
    def __init__(self):
        super().__init__()
        self.delay = 0.0

    async def send(self, request):
        self.calls.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, BaseException):
            raise item
        return item


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def async_transport():
    return AsyncFakeTransport()


@pytest.fixture
def make_response():
    return ok
