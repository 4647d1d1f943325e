"""Authentication sources and browser autodetection."""

from __future__ import annotations

import os
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .config import AuthConfig

DEFAULT_BROWSER_ORDER: tuple[str, ...] = ("chrome", "firefox", "chromium", "edge")
PRIMARY_BROWSER = "chrome"


@dataclass(frozen=True)
class BrowserSource:
    """Cookies read by the downloader straight from a browser's profile."""

    browser: str

    @property
    def label(self) -> str:
        return f"browser cookies ({self.browser})"


# Closed union of source kinds; new kinds (e.g. a device-code flow) are added here.
AuthSource = Union[BrowserSource]


def source_label(src: AuthSource) -> str:
    if isinstance(src, BrowserSource):
        return src.label
    raise TypeError(f"unknown auth source: {src!r}")


def _profile_roots(home: Path, system: str) -> dict[str, list[Path]]:
    if system == "Linux":
        return {
            "chrome": [home / ".config" / "google-chrome"],
            "chromium": [home / ".config" / "chromium"],
            "edge": [home / ".config" / "microsoft-edge"],
            "firefox": [home / ".mozilla" / "firefox"],
        }
    if system == "Darwin":
        support = home / "Library" / "Application Support"
        return {
            "chrome": [support / "Google" / "Chrome"],
            "chromium": [support / "Chromium"],
            "edge": [support / "Microsoft Edge"],
            "firefox": [support / "Firefox"],
        }
    if system == "Windows":
        # An unset variable would otherwise resolve the roots against the cwd.
        local = os.environ.get("LOCALAPPDATA", "")
        roaming = os.environ.get("APPDATA", "")
        roots: dict[str, list[Path]] = {}
        if local:
            roots["chrome"] = [Path(local) / "Google" / "Chrome" / "User Data"]
            roots["chromium"] = [Path(local) / "Chromium" / "User Data"]
            roots["edge"] = [Path(local) / "Microsoft" / "Edge" / "User Data"]
        if roaming:
            roots["firefox"] = [Path(roaming) / "Mozilla" / "Firefox"]
        return roots
    return {}


def detect_browsers(home: Path | None = None, system: str | None = None) -> list[str]:
    """Browsers with an existing profile directory, in a stable order."""
    try:
        home = home or Path.home()
    except RuntimeError:
        return []
    roots = _profile_roots(home, system or platform.system())
    return [
        name
        for name in ("chrome", "chromium", "edge", "firefox")
        if any(p.is_dir() for p in roots.get(name, []))
    ]


def auto_browser_order(available: list[str]) -> list[str]:
    if len(available) == 1:
        return list(available)
    # None detected means we cannot tell; try every browser in priority order.
    if not available:
        return list(DEFAULT_BROWSER_ORDER)
    return [b for b in DEFAULT_BROWSER_ORDER if b in available]


def build_auth_sources(config: AuthConfig, available: list[str] | None = None) -> list[AuthSource]:
    if config.browser:
        return [BrowserSource(config.browser)]
    if available is None:
        available = detect_browsers()
    return [BrowserSource(b) for b in auto_browser_order(available)]


__all__ = [
    "AuthSource",
    "BrowserSource",
    "DEFAULT_BROWSER_ORDER",
    "PRIMARY_BROWSER",
    "auto_browser_order",
    "build_auth_sources",
    "detect_browsers",
    "source_label",
]
