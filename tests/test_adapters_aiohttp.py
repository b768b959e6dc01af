import asyncio
from unittest.mock import AsyncMock

import aiohttp
import pytest

from quickcall import AiohttpTransport, AsyncClient, TransportError, TransportRequest, TransportTimeout


class FakeResponse:
    def __init__(self, status=200, body=b'{"ok": true}', headers=None):
        self.status = status
        self.reason = "OK"
        self.headers = headers or {"Content-Type": "application/json"}
        self.charset = "utf-8"
        self._body = body

    async def read(self):
        return self._body


@pytest.mark.asyncio
async def test_aiohttp_json_body_and_timeout():
    session = AsyncMock()
    session.request.return_value = FakeResponse()
    async with AsyncClient("https://example.com", transport=AiohttpTransport(session=session)) as client:
        resp = await client.put("/items/1", {"a": 1}, timeout=4.0)
    assert resp.data == {"ok": True}
    args, kwargs = session.request.call_args
    assert args[:2] == ("PUT", "https://example.com/items/1")
    assert kwargs["json"] == {"a": 1}
    assert kwargs["timeout"].total == 4.0  # noqa: PLR2004
    session.close.assert_not_called()


@pytest.mark.asyncio
async def test_aiohttp_errors_translated():
    session = AsyncMock()
    transport = AiohttpTransport(session=session)
    session.request.side_effect = asyncio.TimeoutError()
    with pytest.raises(TransportTimeout):
        await transport.send(TransportRequest("GET", "https://example.com", {}))
    session.request.side_effect = aiohttp.ClientConnectionError("refused")
    with pytest.raises(TransportError):
        await transport.send(TransportRequest("GET", "https://example.com", {}))
