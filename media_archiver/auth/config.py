from __future__ import annotations

import os
import platform
import shutil
from dataclasses import dataclass
from pathlib import Path

from .errors import BrowserNotFound

APP_DIR_NAME = "media-archiver"
CHROME_PATH_ENV = "ARCHIVER_CHROME_PATH"

MACOS_CHROME_APP = "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def is_runnable_file(path: str) -> bool:
    p = Path(path)
    if not p.is_file():
        return False
    if platform.system() == "Windows":
        return True
    return os.access(str(p), os.X_OK)


def _windows_chrome_dirs() -> list[str]:
    dirs: list[str] = []
    for env_key in ("PROGRAMFILES", "PROGRAMFILES(X86)", "LOCALAPPDATA"):
        base = os.environ.get(env_key, "").strip()
        if base:
            dirs.append(os.path.join(base, "Google", "Chrome", "Application"))
    return dirs


def detect_browser_binary() -> str:
    """Locate the Chrome executable used for DevTools extraction.

    ``ARCHIVER_CHROME_PATH`` bypasses autodetection entirely; an invalid value
    is an error rather than a silent fallback.
    """
    override = os.environ.get(CHROME_PATH_ENV, "").strip()
    if override:
        path = expand_path(override)
        if is_runnable_file(path):
            return path
        raise BrowserNotFound(f"{CHROME_PATH_ENV} is not a runnable file: {override}")

    system = platform.system()
    if system == "Windows":
        found = shutil.which("chrome")
        if found:
            return found
        for directory in _windows_chrome_dirs():
            candidate = os.path.join(directory, "chrome.exe")
            if is_runnable_file(candidate):
                return candidate
    elif system == "Darwin":
        if is_runnable_file(MACOS_CHROME_APP):
            return MACOS_CHROME_APP
        found = shutil.which("google-chrome")
        if found:
            return found
    else:
        for name in ("google-chrome", "chrome"):
            found = shutil.which(name)
            if found:
                return found

    raise BrowserNotFound(f"Google Chrome not found; set {CHROME_PATH_ENV} to the chrome executable")


def default_state_dir() -> str:
    """Process-wide application state directory (not created here)."""
    override = os.environ.get("ARCHIVER_STATE_DIR", "").strip()
    if override:
        return expand_path(override)
    if platform.system() == "Windows":
        local = os.environ.get("LOCALAPPDATA", "").strip()
        if local:
            return os.path.join(local, APP_DIR_NAME)
    if platform.system() == "Darwin":
        return expand_path(f"~/Library/Application Support/{APP_DIR_NAME}")
    base = os.environ.get("XDG_CONFIG_HOME", "").strip() or expand_path("~/.config")
    return os.path.join(base, APP_DIR_NAME)


def _env_float(key: str, default: float) -> float:
    try:
        return float(os.environ.get(key) or default)
    except ValueError:
        return default


@dataclass
class AuthConfig:
    state_dir: str
    browser: str = ""
    browser_profile: str = ""
    devtools_timeout: float = 15.0
    target_timeout: float = 15.0
    interactive_target_timeout: float = 5.0
    ytdlp_path: str = "yt-dlp"

    @property
    def managed_profile_dir(self) -> str:
        """Long-lived browser profile the operator signs into once."""
        return os.path.join(self.state_dir, "chrome-profile")

    @classmethod
    def from_env(cls) -> AuthConfig:
        return cls(
            state_dir=default_state_dir(),
            browser=os.environ.get("ARCHIVER_BROWSER", "").strip().lower(),
            browser_profile=os.environ.get("ARCHIVER_BROWSER_PROFILE", "").strip(),
            devtools_timeout=_env_float("ARCHIVER_DEVTOOLS_TIMEOUT", 15.0),
            target_timeout=_env_float("ARCHIVER_TARGET_TIMEOUT", 15.0),
            ytdlp_path=os.environ.get("ARCHIVER_YTDLP", "").strip() or "yt-dlp",
        )


__all__ = [
    "AuthConfig",
    "CHROME_PATH_ENV",
    "default_state_dir",
    "detect_browser_binary",
    "expand_path",
    "is_runnable_file",
]
