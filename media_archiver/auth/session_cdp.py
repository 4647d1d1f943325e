"""CDP request/response correlation over a raw WebSocket connection."""

from __future__ import annotations

import itertools
import json
import logging
from collections.abc import Iterator
from typing import Any, Protocol

from . import wire
from .cookies import Cookie
from .errors import CDPProtocolError

log = logging.getLogger(__name__)


class MessageConnection(Protocol):
    def write_text(self, data: bytes | str) -> None: ...

    def read_message(self) -> tuple[int, bytes]: ...

    def close(self) -> None: ...


class CdpSession:
    """Synchronous CDP client: one outstanding call at a time.

    The id counter belongs to the session; pass *ids* to control numbering.
    """

    def __init__(self, conn: MessageConnection, *, ids: Iterator[int] | None = None) -> None:
        self.conn = conn
        self._ids = ids if ids is not None else itertools.count(1)

    def _next_envelope(self) -> dict[str, Any] | None:
        _opcode, payload = self.conn.read_message()
        try:
            data = json.loads(payload)
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    def call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send a command and block until its reply arrives (no deadline)."""
        msg_id = next(self._ids)
        msg: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params
        self.conn.write_text(json.dumps(msg))

        while True:
            data = self._next_envelope()
            if data is None or data.get("id") != msg_id:
                # Events carry no id; stale replies carry another one.
                continue
            error = data.get("error")
            if error:
                message = error.get("message") if isinstance(error, dict) else str(error)
                raise CDPProtocolError(f"{method}: {message}")
            result = data.get("result")
            return result if isinstance(result, dict) else {}

    def close(self) -> None:
        self.conn.close()


def get_all_cookies(session: CdpSession) -> list[Cookie]:
    session.call("Network.enable")
    result = session.call("Network.getAllCookies")
    raw = result.get("cookies")
    if not isinstance(raw, list):
        return []
    return [Cookie.from_cdp(item) for item in raw if isinstance(item, dict)]


def fetch_all_cookies(ws_url: str, timeout: float = 5.0) -> list[Cookie]:
    """Dial a page target and return every cookie the browser holds."""
    conn = wire.dial(ws_url, timeout=timeout)
    session = CdpSession(conn)
    try:
        cookies = get_all_cookies(session)
    finally:
        session.close()
    log.debug("Fetched %d cookies over CDP", len(cookies))
    return cookies


__all__ = ["CdpSession", "MessageConnection", "fetch_all_cookies", "get_all_cookies"]
