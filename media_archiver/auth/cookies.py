"""Netscape cookie-jar codec and the "looks authenticated" heuristic.

The jar is read by the external downloader, so the format follows what
curl/yt-dlp accept:

    domain  includeSubdomains  path  secure  expires  name  value
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import CookieFileIOError

log = logging.getLogger(__name__)

NETSCAPE_HEADER = "# Netscape HTTP Cookie File"
GENERATED_NOTICE = "# This file was generated by media-archiver. DO NOT EDIT."
_HTTPONLY_PREFIX = "#HttpOnly_"

DomainFilter = Callable[[str], bool]


@dataclass
class Cookie:
    name: str
    value: str
    domain: str
    path: str = "/"
    expires: float = 0.0
    secure: bool = False

    @property
    def is_session(self) -> bool:
        return self.expires <= 0

    @classmethod
    def from_cdp(cls, raw: dict[str, Any]) -> Cookie:
        """Build a cookie from a ``Network.getAllCookies`` entry (session cookies report -1)."""
        try:
            expires = float(raw.get("expires") or 0)
        except (TypeError, ValueError):
            expires = 0.0
        return cls(
            name=str(raw.get("name") or ""),
            value=str(raw.get("value") or ""),
            domain=str(raw.get("domain") or ""),
            path=str(raw.get("path") or "/"),
            expires=expires,
            secure=bool(raw.get("secure")),
        )


def _format_expires(expires: float) -> str:
    # "0" reads as already expired downstream and the cookie is silently dropped.
    if expires <= 0:
        return ""
    return str(int(expires))


def format_record(cookie: Cookie) -> str:
    include_subdomains = "TRUE" if cookie.domain.startswith(".") else "FALSE"
    secure = "TRUE" if cookie.secure else "FALSE"
    return "\t".join(
        [
            cookie.domain,
            include_subdomains,
            cookie.path,
            secure,
            _format_expires(cookie.expires),
            cookie.name,
            cookie.value,
        ]
    )


def write_netscape(path: str | Path, cookies: Iterable[Cookie], allow_domain: DomainFilter | None = None) -> int:
    """Write the cookies passing *allow_domain* to *path*. Returns the record count."""
    lines = [NETSCAPE_HEADER, GENERATED_NOTICE]
    for cookie in cookies:
        if allow_domain is not None and not allow_domain(cookie.domain):
            continue
        if not cookie.domain.strip():
            continue
        lines.append(format_record(cookie))
    try:
        Path(path).write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as exc:
        raise CookieFileIOError(f"Cannot write cookie file {path}: {exc}") from exc
    return len(lines) - 2


def parse_record(line: str) -> Cookie | None:
    """Parse one Netscape record; ``None`` for comments, blanks and malformed lines."""
    line = line.rstrip("\r\n")
    if line.startswith(_HTTPONLY_PREFIX):
        line = line[len(_HTTPONLY_PREFIX) :]
    elif not line.strip() or line.startswith("#"):
        return None
    fields = line.split("\t")
    if len(fields) < 7:
        return None
    domain, _flag, path, secure, expires, name = fields[:6]
    value = "\t".join(fields[6:])
    try:
        expires_value = float(expires) if expires.strip() else 0.0
    except ValueError:
        return None
    return Cookie(
        name=name,
        value=value,
        domain=domain,
        path=path,
        expires=expires_value,
        secure=secure.strip().upper() == "TRUE",
    )


def read_netscape(path: str | Path) -> list[Cookie]:
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise CookieFileIOError(f"Cannot read cookie file {path}: {exc}") from exc
    cookies: list[Cookie] = []
    for line in text.splitlines():
        cookie = parse_record(line)
        if cookie is not None:
            cookies.append(cookie)
    return cookies


def looks_authenticated(
    cookies: Iterable[Cookie],
    auth_cookie_names: Iterable[str],
    allow_domain: DomainFilter | None = None,
) -> bool:
    """True iff an allowed-domain cookie with an auth name has a non-empty value."""
    wanted = set(auth_cookie_names)
    if not wanted:
        return False
    for cookie in cookies:
        if allow_domain is not None and not allow_domain(cookie.domain):
            continue
        if cookie.name in wanted and cookie.value != "":
            return True
    return False


__all__ = [
    "Cookie",
    "GENERATED_NOTICE",
    "NETSCAPE_HEADER",
    "format_record",
    "looks_authenticated",
    "parse_record",
    "read_netscape",
    "write_netscape",
]
