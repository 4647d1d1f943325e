"""Multi-source authentication fallback.

Order: cached cookie file (when present), then each configured source. After
a retryable failure of the primary browser the CDP path runs before moving on,
because CDP reads cookies from inside the browser and gets past cookie
database locks and encryption that defeat a direct read.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Protocol

from .browsers import PRIMARY_BROWSER, AuthSource, BrowserSource, source_label
from .cookie_cache import (
    create_temp_jar,
    ensure_state_dir,
    filter_cookie_file,
    promote_if_authenticated,
    remove_quietly,
    replace_private,
    write_private,
)
from .cookies import Cookie
from .downloader import Downloader, DownloadResult, login_command
from .errors import AuthError, CookieFileIOError, ExitCode, NotAuthenticated, Outcome, classify_code, classify_error
from .extract import platform_is_authenticated
from .platforms import PlatformProfile

log = logging.getLogger(__name__)


class CookieExtractor(Protocol):
    def extract(self, platform: PlatformProfile, *, headless: bool = True) -> list[Cookie]: ...


@dataclass
class Attempt:
    label: str
    outcome: Outcome
    code: ExitCode
    paths: list[str] = field(default_factory=list)
    message: str = ""


@dataclass
class AuthResult:
    code: ExitCode
    paths: list[str] = field(default_factory=list)
    source: str = ""
    attempts: list[Attempt] = field(default_factory=list)
    guidance: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.code == ExitCode.OK


def _attempt_from_download(label: str, result: DownloadResult) -> Attempt:
    return Attempt(label, classify_code(result.code), result.code, list(result.paths), result.hint)


class AuthOrchestrator:
    def __init__(
        self,
        platform: PlatformProfile,
        downloader: Downloader,
        *,
        sources: list[AuthSource],
        cache_path: str = "",
        cdp_extractor: CookieExtractor | None = None,
        primary_browser: str = PRIMARY_BROWSER,
        pinned: bool = False,
    ) -> None:
        self.platform = platform
        self.downloader = downloader
        self.sources = list(sources)
        self.cache_path = cache_path
        self.cdp_extractor = cdp_extractor
        self.primary_browser = primary_browser
        self.pinned = pinned

    # -- cache helpers -----------------------------------------------------

    def _refilter_cache(self) -> None:
        if not self.cache_path or not os.path.isfile(self.cache_path):
            return
        try:
            filter_cookie_file(self.cache_path, self.platform)
        except CookieFileIOError as exc:
            log.warning("Filtering cookie cache failed (continuing): %s", exc)

    # -- individual attempts -----------------------------------------------

    def _try_cache(self, target_url: str) -> Attempt:
        log.info("Auth source: cookie cache (%s)", self.cache_path)
        result = self.downloader.run(target_url, cookie_file=self.cache_path)
        self._refilter_cache()
        return _attempt_from_download("cookie cache", result)

    def _try_browser(self, target_url: str, src: BrowserSource) -> Attempt:
        label = source_label(src)
        if not self.cache_path:
            return _attempt_from_download(label, self.downloader.run(target_url, browser=src.browser))

        # The downloader writes its jar back to --cookies; never hand it the cache
        # directly or an unauthenticated profile would overwrite a good session.
        try:
            ensure_state_dir(os.path.dirname(self.cache_path))
            tmp_jar = create_temp_jar(os.path.dirname(self.cache_path))
        except CookieFileIOError as exc:
            log.warning("No temporary cookie jar (%s); running without caching", exc)
            return _attempt_from_download(label, self.downloader.run(target_url, browser=src.browser))

        try:
            result = self.downloader.run(target_url, browser=src.browser, cookie_file=tmp_jar)
            try:
                promote_if_authenticated(tmp_jar, self.cache_path, self.platform)
            except CookieFileIOError as exc:
                log.warning("Updating cookie cache failed (continuing): %s", exc)
        finally:
            remove_quietly(tmp_jar)
        self._refilter_cache()
        return _attempt_from_download(label, result)

    def _try_cdp(self, target_url: str) -> Attempt:
        label = "browser session over CDP"
        if self.cdp_extractor is None:
            return Attempt(label, Outcome.RETRYABLE, ExitCode.COOKIE_PROBLEM, message="CDP extraction unavailable")
        log.info("%s cookies failed; trying the browser's own session over CDP", self.primary_browser)
        try:
            cookies = self.cdp_extractor.extract(self.platform, headless=True)
            if not platform_is_authenticated(cookies, self.platform):
                raise NotAuthenticated("The managed browser profile is not signed in")
        except AuthError as exc:
            outcome, code = classify_error(exc)
            log.warning("Cannot get cookies from the browser: %s", exc)
            return Attempt(label, outcome, code, message=str(exc))

        if self.cache_path:
            try:
                ensure_state_dir(os.path.dirname(self.cache_path))
                replace_private(self.cache_path, cookies, self.platform)
            except CookieFileIOError as exc:
                log.warning("Refreshing cookie cache failed (continuing): %s", exc)

        try:
            tmp_jar = create_temp_jar(os.path.dirname(self.cache_path) if self.cache_path else "")
        except CookieFileIOError as exc:
            return Attempt(label, Outcome.RETRYABLE, ExitCode.COOKIE_PROBLEM, message=str(exc))
        try:
            write_private(tmp_jar, cookies, self.platform)
            result = self.downloader.run(target_url, cookie_file=tmp_jar)
        except CookieFileIOError as exc:
            return Attempt(label, Outcome.RETRYABLE, ExitCode.COOKIE_PROBLEM, message=str(exc))
        finally:
            remove_quietly(tmp_jar)
        self._refilter_cache()
        return _attempt_from_download(label, result)

    # -- state machine -------------------------------------------------------

    def _finish(self, result: AuthResult, attempt: Attempt) -> AuthResult:
        result.attempts.append(attempt)
        result.code = attempt.code
        result.source = attempt.label
        result.paths = list(attempt.paths)
        if attempt.message and attempt.outcome != Outcome.SUCCESS:
            result.guidance.append(attempt.message)
        return result

    def _give_up(self, result: AuthResult) -> AuthResult:
        login_cmd = login_command(self.platform)
        result.code = ExitCode.AUTH_REQUIRED
        result.paths = []
        result.guidance += [
            "No usable signed-in session was found. Sign in to the site in your browser and retry.",
            "If you are signed in with Firefox, try: ARCHIVER_BROWSER=firefox media-archiver get <url>",
            f"Or run once: {login_cmd}",
        ]
        for line in result.guidance[-3:]:
            log.warning(line)
        return result

    def run(self, target_url: str) -> AuthResult:
        result = AuthResult(code=ExitCode.AUTH_REQUIRED)

        if self.cache_path and os.path.isfile(self.cache_path):
            attempt = self._try_cache(target_url)
            result.attempts.append(attempt)
            if attempt.outcome != Outcome.RETRYABLE:
                return self._finish(result, result.attempts.pop())

        for i, src in enumerate(self.sources):
            log.info("Auth source (%d/%d): %s", i + 1, len(self.sources), source_label(src))
            attempt = self._try_browser(target_url, src)
            if attempt.outcome == Outcome.SUCCESS:
                if i > 0 and not self.pinned:
                    log.info(
                        "Switched to %s automatically. Set ARCHIVER_BROWSER=%s to always use it.",
                        src.browser,
                        src.browser,
                    )
                return self._finish(result, attempt)
            if attempt.outcome == Outcome.TERMINAL:
                return self._finish(result, attempt)
            result.attempts.append(attempt)

            if src.browser == self.primary_browser:
                cdp_attempt = self._try_cdp(target_url)
                if cdp_attempt.outcome != Outcome.RETRYABLE:
                    return self._finish(result, cdp_attempt)
                result.attempts.append(cdp_attempt)
                if cdp_attempt.code == ExitCode.AUTH_REQUIRED:
                    log.warning(
                        "The browser session could not authorize this download (not signed in, verification "
                        "pending, or account restricted). Run first: %s",
                        login_command(self.platform),
                    )

            if i < len(self.sources) - 1:
                log.info("Auth source failed (exit code %d); trying the next one", int(attempt.code))

        return self._give_up(result)


__all__ = ["Attempt", "AuthOrchestrator", "AuthResult", "CookieExtractor"]
