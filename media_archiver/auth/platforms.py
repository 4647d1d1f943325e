from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import urlsplit


def _suffix_match(value: str, suffixes: tuple[str, ...]) -> bool:
    for raw in suffixes:
        suffix = (raw or "").strip().lower()
        if not suffix:
            continue
        if value == suffix or value.endswith("." + suffix):
            return True
    return False


@dataclass(frozen=True)
class PlatformProfile:
    """Per-site authentication settings (read-only)."""

    id: str
    name: str
    match_hosts: tuple[str, ...] = ()
    login_url: str = ""
    # Cookie domains kept when persisting a jar; empty means keep everything.
    cookie_domain_suffixes: tuple[str, ...] = ()
    # Cookie names whose non-empty presence suggests a logged-in session.
    auth_cookie_names: tuple[str, ...] = ()

    @property
    def display_name(self) -> str:
        return self.name.strip() or self.id.strip()

    @property
    def has_auth_signals(self) -> bool:
        return bool(self.auth_cookie_names)

    def matches_url(self, url: str) -> bool:
        host = (urlsplit(url).hostname or "").strip().lower()
        if not host:
            return False
        return _suffix_match(host, self.match_hosts)

    def allows_cookie_domain(self, domain: str) -> bool:
        if not self.cookie_domain_suffixes:
            return True
        d = (domain or "").strip().lower().lstrip(".")
        if not d:
            return False
        return _suffix_match(d, self.cookie_domain_suffixes)


YOUTUBE = PlatformProfile(
    id="youtube",
    name="YouTube",
    match_hosts=("youtube.com", "youtu.be"),
    login_url="https://www.youtube.com",
    # Auth cookies live on google.com while playback happens on youtube.com.
    cookie_domain_suffixes=("youtube.com", "google.com"),
    auth_cookie_names=("SAPISID", "SID", "__Secure-3PSID", "__Secure-1PSID"),
)

BILIBILI = PlatformProfile(
    id="bilibili",
    name="Bilibili",
    match_hosts=("bilibili.com", "b23.tv"),
    login_url="https://www.bilibili.com",
    cookie_domain_suffixes=("bilibili.com",),
    auth_cookie_names=("SESSDATA",),
)

# Placeholder for URLs no registered platform claims: nothing is persisted for it.
UNKNOWN_PLATFORM = PlatformProfile(id="", name="")


@dataclass
class PlatformRegistry:
    platforms: list[PlatformProfile] = field(default_factory=lambda: [YOUTUBE, BILIBILI])

    def ids(self) -> list[str]:
        return [p.id for p in self.platforms]

    def by_id(self, platform_id: str) -> PlatformProfile | None:
        wanted = (platform_id or "").strip().lower()
        for p in self.platforms:
            if p.id == wanted:
                return p
        return None

    def for_url(self, url: str) -> PlatformProfile | None:
        for p in self.platforms:
            if p.matches_url(url):
                return p
        return None


__all__ = ["BILIBILI", "PlatformProfile", "PlatformRegistry", "UNKNOWN_PLATFORM", "YOUTUBE"]
