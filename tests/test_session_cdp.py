from __future__ import annotations

import json
from typing import Any

import pytest

from media_archiver.auth import session_cdp
from media_archiver.auth.errors import CDPProtocolError, ConnectionClosed
from media_archiver.auth.session_cdp import CdpSession, fetch_all_cookies, get_all_cookies
from media_archiver.auth.wire import OP_TEXT


class FakeConn:
    """Scripted message connection: replays *incoming*, records writes."""

    def __init__(self, incoming: list[Any]) -> None:
        self.incoming = [m if isinstance(m, bytes) else json.dumps(m).encode() for m in incoming]
        self.sent: list[dict[str, Any]] = []
        self.closed = False

    def write_text(self, data: bytes | str) -> None:
        self.sent.append(json.loads(data))

    def read_message(self) -> tuple[int, bytes]:
        if not self.incoming:
            raise ConnectionClosed("no more messages")
        return OP_TEXT, self.incoming.pop(0)

    def close(self) -> None:
        self.closed = True


def test_call_skips_event_and_returns_matching_result() -> None:
    conn = FakeConn(
        [
            {"method": "Network.requestWillBeSent", "params": {"requestId": "1"}},
            {"id": 5, "result": {"cookies": []}},
        ]
    )
    session = CdpSession(conn, ids=iter([5]))
    assert session.call("Network.getAllCookies") == {"cookies": []}
    assert conn.sent == [{"id": 5, "method": "Network.getAllCookies"}]
    assert conn.incoming == []


def test_call_skips_garbage_and_stale_replies() -> None:
    conn = FakeConn([b"not json", b"[1, 2]", {"id": 99, "result": {"stale": True}}, {"id": 1, "result": {"ok": 1}}])
    session = CdpSession(conn)
    assert session.call("Runtime.evaluate", {"expression": "1"}) == {"ok": 1}
    assert conn.sent[0]["params"] == {"expression": "1"}


def test_ids_increase_per_session() -> None:
    conn = FakeConn([{"id": 1, "result": {}}, {"id": 2, "result": {}}])
    session = CdpSession(conn)
    session.call("Network.enable")
    session.call("Network.enable")
    assert [m["id"] for m in conn.sent] == [1, 2]


def test_call_raises_protocol_error() -> None:
    conn = FakeConn([{"id": 1, "error": {"code": -32601, "message": "'Network.nope' wasn't found"}}])
    session = CdpSession(conn)
    with pytest.raises(CDPProtocolError) as excinfo:
        session.call("Network.nope")
    assert "Network.nope: 'Network.nope' wasn't found" in str(excinfo.value)


def test_missing_result_is_empty_dict() -> None:
    conn = FakeConn([{"id": 1}])
    assert CdpSession(conn).call("Network.enable") == {}


def test_transport_error_propagates() -> None:
    session = CdpSession(FakeConn([]))
    with pytest.raises(ConnectionClosed):
        session.call("Network.enable")


def test_get_all_cookies_enables_network_first() -> None:
    conn = FakeConn(
        [
            {"id": 1, "result": {}},
            {
                "id": 2,
                "result": {
                    "cookies": [
                        {"name": "SAPISID", "value": "abc", "domain": ".youtube.com", "path": "/", "expires": -1},
                        {"name": "PREF", "value": "f1", "domain": ".youtube.com", "expires": 1893456000.5,
                         "secure": True},
                    ]
                },
            },
        ]
    )
    cookies = get_all_cookies(CdpSession(conn))
    assert [m["method"] for m in conn.sent] == ["Network.enable", "Network.getAllCookies"]
    assert [c.name for c in cookies] == ["SAPISID", "PREF"]
    assert cookies[0].is_session
    assert cookies[1].secure
    assert cookies[1].expires == 1893456000.5


def test_fetch_all_cookies_closes_connection_on_error(monkeypatch: pytest.MonkeyPatch) -> None:
    conn = FakeConn([{"id": 1, "error": {"message": "boom"}}])
    monkeypatch.setattr(session_cdp.wire, "dial", lambda url, timeout=5.0: conn)
    with pytest.raises(CDPProtocolError):
        fetch_all_cookies("ws://127.0.0.1:9222/devtools/page/1")
    assert conn.closed


def test_fetch_all_cookies_success(monkeypatch: pytest.MonkeyPatch) -> None:
    conn = FakeConn([{"id": 1, "result": {}}, {"id": 2, "result": {"cookies": [{"name": "a", "value": "b"}]}}])
    dialed: list[str] = []

    def fake_dial(url: str, timeout: float = 5.0) -> FakeConn:
        dialed.append(url)
        return conn

    monkeypatch.setattr(session_cdp.wire, "dial", fake_dial)
    cookies = fetch_all_cookies("ws://127.0.0.1:9222/devtools/page/1")
    assert dialed == ["ws://127.0.0.1:9222/devtools/page/1"]
    assert [c.name for c in cookies] == ["a"]
    assert conn.closed
