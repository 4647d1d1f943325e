"""Cookie extraction from inside the browser over CDP.

Both flows use the tool-managed browser profile, so no cookie database is
read from disk and OS-level cookie encryption does not get in the way.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from . import discovery
from .config import AuthConfig, detect_browser_binary
from .cookie_cache import cache_file_path, ensure_state_dir, replace_private
from .cookies import Cookie, looks_authenticated
from .errors import NotAuthenticated
from .launcher import BLANK_PAGE, BrowserLauncher
from .platforms import PlatformProfile
from .session_cdp import fetch_all_cookies

log = logging.getLogger(__name__)

# Time for the profile's cookie store to load after the first page appears.
COOKIE_STORE_SETTLE = 0.5


def platform_is_authenticated(cookies: list[Cookie], platform: PlatformProfile) -> bool:
    return looks_authenticated(cookies, platform.auth_cookie_names, platform.allows_cookie_domain)


class CdpCookieExtractor:
    def __init__(self, config: AuthConfig, *, launcher: BrowserLauncher | None = None) -> None:
        self.config = config
        self.launcher = launcher or BrowserLauncher(config)

    def _open_url(self, platform: PlatformProfile) -> str:
        return platform.login_url.strip() or BLANK_PAGE

    def extract(self, platform: PlatformProfile, *, headless: bool = True) -> list[Cookie]:
        """Launch the managed profile and return every cookie it holds."""
        browser_path = detect_browser_binary()
        with self.launcher.start(
            browser_path,
            self.config.managed_profile_dir,
            headless=headless,
            open_url=self._open_url(platform),
        ) as browser:
            ws_url = discovery.first_page_target(browser.port, self.config.target_timeout)
            time.sleep(COOKIE_STORE_SETTLE)
            return fetch_all_cookies(ws_url)

    def interactive_login(self, platform: PlatformProfile, *, prompt: Callable[[str], str] = input) -> str:
        """Open a visible window, wait for the operator, then persist the session.

        Returns the cookie cache path. The wait for the operator has no timeout.
        """
        browser_path = detect_browser_binary()
        profile_dir = self.config.managed_profile_dir
        log.info("Using browser: %s", browser_path)
        log.info("Using profile: %s", profile_dir)
        log.info("A browser window will open; sign in to %s there, then press Enter here.", platform.display_name)

        with self.launcher.start(browser_path, profile_dir, headless=False, open_url=self._open_url(platform)) as browser:
            log.info(
                "For videos that need an extra confirmation (age, membership), open one in that window "
                "and confirm before pressing Enter."
            )
            prompt("Press Enter once you are signed in... ")
            ws_url = discovery.first_page_target(browser.port, self.config.interactive_target_timeout)
            cookies = fetch_all_cookies(ws_url)

        if not platform_is_authenticated(cookies, platform):
            raise NotAuthenticated("No signed-in session cookies found (not signed in, or verification not finished)")

        cache_path = cache_file_path(platform, self.config)
        ensure_state_dir(self.config.state_dir)
        count = replace_private(cache_path, cookies, platform)
        log.info("Saved %d cookies to %s", count, cache_path)
        return cache_path


__all__ = [
    "COOKIE_STORE_SETTLE",
    "CdpCookieExtractor",
    "platform_is_authenticated",
]
