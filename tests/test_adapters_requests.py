from unittest.mock import MagicMock

import pytest
import requests

from quickcall import Client, RequestsTransport, TransportError, TransportRequest, TransportTimeout


def _resp(status=200, content=b'{"id": 1}', reason="OK"):
    resp = MagicMock()
    resp.status_code = status
    resp.content = content
    resp.encoding = "utf-8"
    resp.reason = reason
    resp.headers = {"Content-Type": "application/json"}
    return resp


def test_requests_sends_json_body_and_timeout():
    sess = MagicMock()
    sess.request.return_value = _resp()
    transport = RequestsTransport(session=sess)
    r = transport.send(
        TransportRequest("POST", "https://example.com/x", {"X-A": "1"}, body={"a": 1}, timeout=3.0)
    )
    assert r.data == {"id": 1}
    assert r.status_text == "OK"
    args, kwargs = sess.request.call_args
    assert args == ("POST", "https://example.com/x")
    assert kwargs["json"] == {"a": 1}
    assert kwargs["timeout"] == 3.0  # noqa: PLR2004
    assert kwargs["headers"]["X-A"] == "1"


def test_requests_text_body_and_response():
    sess = MagicMock()
    sess.request.return_value = _resp(content=b"plain text")
    r = RequestsTransport(session=sess).send(
        TransportRequest("PUT", "https://example.com", {}, body="raw")
    )
    assert r.data == "plain text"
    _, kwargs = sess.request.call_args
    assert kwargs["data"] == "raw"


def test_requests_errors_translated():
    sess = MagicMock()
    transport = RequestsTransport(session=sess)
    sess.request.side_effect = requests.Timeout("slow")
    with pytest.raises(TransportTimeout):
        transport.send(TransportRequest("GET", "https://example.com", {}))
    sess.request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(TransportError):
        transport.send(TransportRequest("GET", "https://example.com", {}))


def test_client_keeps_caller_session_open():
    sess = MagicMock()
    sess.request.return_value = _resp(content=b"")
    with Client("https://example.com", transport=RequestsTransport(session=sess)) as client:
        r = client.get("/ping")
        assert r.data is None
        _, kwargs = sess.request.call_args
        assert kwargs["headers"]["Accept"] == "application/json"
    sess.close.assert_not_called()
