"""Persistent per-platform cookie cache and temporary jar handling.

The cache is single-writer: no locking is done, so two concurrent runs for the
same platform may race on the same file.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import tempfile
from pathlib import Path

from .config import AuthConfig
from .cookies import looks_authenticated, read_netscape, write_netscape
from .errors import CookieFileIOError
from .platforms import PlatformProfile

log = logging.getLogger(__name__)


def cache_file_path(platform: PlatformProfile, config: AuthConfig) -> str:
    if not platform.id.strip():
        raise ValueError("platform id is empty")
    # The YouTube file name predates multi-platform support.
    if platform.id == "youtube":
        return os.path.join(config.state_dir, "youtube-cookies.txt")
    return os.path.join(config.state_dir, f"{platform.id}-cookies.txt")


def ensure_state_dir(path: str) -> None:
    try:
        os.makedirs(path, mode=0o700, exist_ok=True)
    except OSError as exc:
        raise CookieFileIOError(f"Cannot create state directory {path}: {exc}") from exc


def create_temp_jar(directory: str) -> str:
    """Create an empty temporary cookie jar next to the cache."""
    try:
        fd, path = tempfile.mkstemp(prefix="cookies-", suffix=".txt", dir=directory or None)
    except OSError as exc:
        raise CookieFileIOError(f"Cannot create temporary cookie jar in {directory}: {exc}") from exc
    os.close(fd)
    # The downloader rejects a jar without the Netscape header line.
    try:
        write_netscape(path, [])
    except CookieFileIOError:
        remove_quietly(path)
        raise
    return path


def remove_quietly(path: str) -> None:
    if path:
        with contextlib.suppress(FileNotFoundError):
            os.remove(path)


def copy_file_atomic(src: str, dst: str) -> None:
    """Copy *src* over *dst* via a sibling temp file and ``os.replace``."""
    directory = os.path.dirname(dst) or "."
    try:
        fd, tmp = tempfile.mkstemp(prefix=".cookies-", suffix=".tmp", dir=directory)
    except OSError as exc:
        raise CookieFileIOError(f"Cannot update cookie cache {dst}: {exc}") from exc
    os.close(fd)
    try:
        shutil.copyfile(src, tmp)
        with contextlib.suppress(OSError):
            os.chmod(tmp, 0o600)
        os.replace(tmp, dst)
    except OSError as exc:
        remove_quietly(tmp)
        raise CookieFileIOError(f"Cannot update cookie cache {dst}: {exc}") from exc


def write_private(path: str, cookies, platform: PlatformProfile) -> int:  # noqa: ANN001
    count = write_netscape(path, cookies, platform.allows_cookie_domain)
    # Windows ignores the mode bits.
    with contextlib.suppress(OSError):
        os.chmod(path, 0o600)
    return count


def replace_private(path: str, cookies, platform: PlatformProfile) -> int:  # noqa: ANN001
    """Like :func:`write_private`, but *path* is only swapped in once fully written.

    A failed write leaves the previous file untouched.
    """
    directory = os.path.dirname(path) or "."
    try:
        fd, tmp = tempfile.mkstemp(prefix=".cookies-", suffix=".tmp", dir=directory)
    except OSError as exc:
        raise CookieFileIOError(f"Cannot update cookie file {path}: {exc}") from exc
    os.close(fd)
    try:
        count = write_private(tmp, cookies, platform)
        os.replace(tmp, path)
    except CookieFileIOError:
        remove_quietly(tmp)
        raise
    except OSError as exc:
        remove_quietly(tmp)
        raise CookieFileIOError(f"Cannot update cookie file {path}: {exc}") from exc
    return count


def filter_cookie_file(path: str, platform: PlatformProfile) -> int:
    """Rewrite *path* keeping only the platform's cookie domains."""
    return replace_private(path, read_netscape(path), platform)


def cookie_file_looks_authenticated(path: str, platform: PlatformProfile) -> bool:
    cookies = read_netscape(path)
    return looks_authenticated(cookies, platform.auth_cookie_names, platform.allows_cookie_domain)


def promote_if_authenticated(tmp_path: str, cache_path: str, platform: PlatformProfile) -> bool:
    """Copy a freshly dumped jar over the cache only when it carries a session."""
    if not Path(tmp_path).is_file():
        return False
    filter_cookie_file(tmp_path, platform)
    if not cookie_file_looks_authenticated(tmp_path, platform):
        log.info("Browser cookies do not look signed in; keeping the existing cache")
        return False
    copy_file_atomic(tmp_path, cache_path)
    log.info("Cookie cache updated: %s", cache_path)
    return True


__all__ = [
    "cache_file_path",
    "cookie_file_looks_authenticated",
    "copy_file_atomic",
    "create_temp_jar",
    "ensure_state_dir",
    "filter_cookie_file",
    "promote_if_authenticated",
    "remove_quietly",
    "replace_private",
    "write_private",
]
