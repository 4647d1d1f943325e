from __future__ import annotations

import contextlib
import logging
import os
import socket
import subprocess
from dataclasses import dataclass, field

from . import discovery
from .config import AuthConfig
from .errors import BrowserNotFound, LaunchError, PortAllocationFailure, ProfileDirectoryError

log = logging.getLogger(__name__)

BLANK_PAGE = "about:blank"


def find_free_port() -> int:
    """Reserve-and-release an ephemeral port on the loopback interface.

    The port is free when this returns but nothing holds it for the browser.
    """
    try:
        with contextlib.closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
            s.bind(("127.0.0.1", 0))
            return s.getsockname()[1]
    except OSError as exc:
        raise PortAllocationFailure(f"Cannot allocate a local port: {exc}") from exc


def build_launch_command(browser_path: str, profile_dir: str, port: int, *, headless: bool, open_url: str) -> list[str]:
    cmd = [
        browser_path,
        "--remote-debugging-address=127.0.0.1",
        f"--remote-debugging-port={port}",
        "--no-first-run",
        "--no-default-browser-check",
        "--disable-background-networking",
        "--disable-sync",
        "--disable-default-apps",
        "--disable-extensions",
        f"--user-data-dir={profile_dir}",
        "--profile-directory=Default",
    ]
    if headless:
        cmd += ["--headless=new", "--disable-gpu"]
    cmd.append(open_url.strip() or BLANK_PAGE)
    return cmd


@dataclass
class RunningBrowser:
    """A launched browser. ``stop()`` must run on every exit path; use ``with``."""

    process: subprocess.Popen
    port: int
    command: list[str] = field(default_factory=list)
    _stopped: bool = field(default=False, repr=False)

    def __enter__(self) -> RunningBrowser:
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()

    def stop(self) -> None:
        """Kill and reap the browser process (idempotent)."""
        if self._stopped:
            return
        self._stopped = True
        with contextlib.suppress(OSError):
            self.process.kill()
        with contextlib.suppress(OSError, subprocess.TimeoutExpired):
            self.process.wait(timeout=10)
        log.debug("Browser on port %d stopped", self.port)


class BrowserLauncher:
    def __init__(self, config: AuthConfig | None = None) -> None:
        self.config = config or AuthConfig.from_env()

    def start(self, browser_path: str, profile_dir: str, *, headless: bool, open_url: str = "") -> RunningBrowser:
        """Start a browser with remote debugging and wait until DevTools answers.

        On a readiness failure the process is stopped before the error propagates.
        """
        port = find_free_port()
        try:
            os.makedirs(profile_dir, mode=0o700, exist_ok=True)
        except OSError as exc:
            raise ProfileDirectoryError(f"Cannot create browser profile directory {profile_dir}: {exc}") from exc

        cmd = build_launch_command(browser_path, profile_dir, port, headless=headless, open_url=open_url)
        log.info("Launching browser: %s (port %d, headless=%s)", os.path.basename(browser_path), port, headless)
        try:
            proc = subprocess.Popen(cmd, stdin=subprocess.DEVNULL, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except FileNotFoundError as exc:
            raise BrowserNotFound(f"Browser executable not found: {browser_path}") from exc
        except OSError as exc:
            raise LaunchError(f"Cannot start browser {browser_path}: {exc}") from exc

        browser = RunningBrowser(process=proc, port=port, command=cmd)
        try:
            discovery.wait_ready(port, self.config.devtools_timeout)
        except BaseException:
            browser.stop()
            raise
        return browser


__all__ = ["BLANK_PAGE", "BrowserLauncher", "RunningBrowser", "build_launch_command", "find_free_port"]
