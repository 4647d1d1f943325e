"""DevTools HTTP control surface: readiness probe and page-target lookup."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any
from urllib.error import URLError
from urllib.request import Request, urlopen

from .errors import DevToolsTimeout

log = logging.getLogger(__name__)

POLL_INTERVAL = 0.2
READY_TIMEOUT = 15.0
TARGET_TIMEOUT = 5.0
_REQUEST_TIMEOUT = 1.0


@dataclass
class DevToolsTarget:
    type: str
    url: str
    web_socket_debugger_url: str

    @property
    def is_page(self) -> bool:
        return self.type == "page" and bool(self.web_socket_debugger_url.strip())

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> DevToolsTarget:
        return cls(
            type=str(raw.get("type") or ""),
            url=str(raw.get("url") or ""),
            web_socket_debugger_url=str(raw.get("webSocketDebuggerUrl") or ""),
        )


def _endpoint(port: int, path: str) -> str:
    return f"http://127.0.0.1:{port}{path}"


def devtools_ready(port: int, timeout: float = _REQUEST_TIMEOUT) -> bool:
    """Return True if ``/json/version`` answers 200."""
    req = Request(_endpoint(port, "/json/version"), headers={"User-Agent": "media-archiver"})
    try:
        with urlopen(req, timeout=timeout) as resp:
            return resp.status == 200
    except (OSError, TimeoutError, URLError):
        return False


def list_targets(port: int, timeout: float = _REQUEST_TIMEOUT) -> list[DevToolsTarget]:
    req = Request(_endpoint(port, "/json/list"), headers={"User-Agent": "media-archiver"})
    try:
        with urlopen(req, timeout=timeout) as resp:
            if getattr(resp, "status", 200) != 200:
                return []
            payload = json.loads(resp.read().decode())
    except (OSError, TimeoutError, URLError, ValueError):
        return []
    if not isinstance(payload, list):
        return []
    return [DevToolsTarget.from_dict(item) for item in payload if isinstance(item, dict)]


def wait_ready(port: int, timeout: float = READY_TIMEOUT, *, interval: float = POLL_INTERVAL) -> None:
    """Block until the DevTools endpoint answers or raise :class:`DevToolsTimeout`."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if devtools_ready(port):
            log.debug("DevTools ready on port %d", port)
            return
        time.sleep(interval)
    raise DevToolsTimeout(f"Chrome DevTools not ready on port {port} after {timeout:.0f}s")


def first_page_target(port: int, timeout: float = TARGET_TIMEOUT, *, interval: float = POLL_INTERVAL) -> str:
    """Return the WebSocket URL of the first live page target."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        for target in list_targets(port):
            if target.is_page:
                return target.web_socket_debugger_url
        time.sleep(interval)
    raise DevToolsTimeout(f"No DevTools page target found on port {port}")


__all__ = [
    "DevToolsTarget",
    "POLL_INTERVAL",
    "READY_TIMEOUT",
    "TARGET_TIMEOUT",
    "devtools_ready",
    "first_page_target",
    "list_targets",
    "wait_ready",
]
