"""
Tests for the multi-source authentication fallback.

Tests cover:
- Source ordering with the CDP fallback after the primary browser
- Terminal outcomes stop the fallback
- Cache use, promotion guard and temporary jar cleanup
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from media_archiver.auth import cookie_cache, session_cdp
from media_archiver.auth.browsers import BrowserSource
from media_archiver.auth.cookie_cache import write_private
from media_archiver.auth.cookies import Cookie, read_netscape
from media_archiver.auth.downloader import DownloadResult
from media_archiver.auth.errors import BrowserNotFound, ExitCode, NotAuthenticated, Outcome
from media_archiver.auth.orchestrator import AuthOrchestrator
from media_archiver.auth.platforms import UNKNOWN_PLATFORM, YOUTUBE

URL = "https://www.youtube.com/watch?v=abc"
GOOD = [Cookie("SAPISID", "good", ".youtube.com", "/", 1893456000.0, True)]
FRESH = [Cookie("SAPISID", "fresh", ".youtube.com", "/", 1893456000.0, True)]
SIGNED_OUT = [Cookie("PREF", "f1", ".youtube.com", "/", 1893456000.0)]

Script = Callable[[str | None, str | None], DownloadResult]


class FakeDownloader:
    def __init__(self, events: list[tuple[str, ...]], script: Script) -> None:
        self.events = events
        self.script = script
        self.cookie_files: list[str | None] = []

    def run(self, target_url: str, *, browser: str | None = None, cookie_file: str | None = None) -> DownloadResult:
        self.events.append(("download", browser or "cookie-file"))
        self.cookie_files.append(cookie_file)
        return self.script(browser, cookie_file)


class FakeExtractor:
    def __init__(self, events: list[tuple[str, ...]], result: list[Cookie] | Exception) -> None:
        self.events = events
        self.result = result

    def extract(self, platform, *, headless: bool = True) -> list[Cookie]:  # noqa: ANN001
        self.events.append(("cdp",))
        if isinstance(self.result, Exception):
            raise self.result
        return list(self.result)


def _sources(*names: str) -> list[BrowserSource]:
    return [BrowserSource(n) for n in names]


def test_fallback_order_chrome_cdp_firefox_then_auth_required(tmp_path: Path) -> None:
    events: list[tuple[str, ...]] = []
    downloader = FakeDownloader(events, lambda browser, cookie_file: DownloadResult(ExitCode.AUTH_REQUIRED))
    extractor = FakeExtractor(events, NotAuthenticated("not signed in"))
    orch = AuthOrchestrator(
        YOUTUBE,
        downloader,
        sources=_sources("chrome", "firefox"),
        cache_path=str(tmp_path / "youtube-cookies.txt"),
        cdp_extractor=extractor,
    )

    result = orch.run(URL)

    assert events == [("download", "chrome"), ("cdp",), ("download", "firefox")]
    assert result.code == ExitCode.AUTH_REQUIRED
    assert [a.outcome for a in result.attempts] == [Outcome.RETRYABLE] * 3
    assert any("media-archiver login youtube" in line for line in result.guidance)
    # Temporary jars are gone and no cache was created from signed-out jars.
    assert list(tmp_path.iterdir()) == []


class DialingExtractor:
    """Goes through the real CDP client against an unusable endpoint."""

    def __init__(self, events: list[tuple[str, ...]], ws_url: str) -> None:
        self.events = events
        self.ws_url = ws_url

    def extract(self, platform, *, headless: bool = True) -> list[Cookie]:  # noqa: ANN001
        self.events.append(("cdp",))
        return session_cdp.fetch_all_cookies(self.ws_url)


@pytest.mark.parametrize("ws_url", ["ws://127.0.0.1:99999/devtools/page/1", "ws://[::1/devtools"])
def test_malformed_debugger_url_falls_through_to_next_browser(tmp_path: Path, ws_url: str) -> None:
    events: list[tuple[str, ...]] = []
    downloader = FakeDownloader(events, lambda browser, cookie_file: DownloadResult(ExitCode.AUTH_REQUIRED))
    orch = AuthOrchestrator(
        YOUTUBE,
        downloader,
        sources=_sources("chrome", "firefox"),
        cache_path=str(tmp_path / "youtube-cookies.txt"),
        cdp_extractor=DialingExtractor(events, ws_url),
    )

    result = orch.run(URL)

    assert events == [("download", "chrome"), ("cdp",), ("download", "firefox")]
    assert result.attempts[1].outcome == Outcome.RETRYABLE
    assert result.code == ExitCode.AUTH_REQUIRED


def test_cdp_success_refreshes_cache_and_stops(tmp_path: Path) -> None:
    events: list[tuple[str, ...]] = []
    cache = tmp_path / "youtube-cookies.txt"

    def script(browser: str | None, cookie_file: str | None) -> DownloadResult:
        if browser == "chrome":
            return DownloadResult(ExitCode.COOKIE_PROBLEM, hint="locked")
        assert cookie_file and cookie_file != str(cache)
        assert [c.name for c in read_netscape(cookie_file)] == ["SAPISID"]
        return DownloadResult(ExitCode.OK, paths=["/out/v.mp4"])

    downloader = FakeDownloader(events, script)
    extractor = FakeExtractor(events, FRESH + [Cookie("ad", "1", ".adnetwork.example")])
    orch = AuthOrchestrator(
        YOUTUBE, downloader, sources=_sources("chrome", "firefox"), cache_path=str(cache), cdp_extractor=extractor
    )

    result = orch.run(URL)

    assert events == [("download", "chrome"), ("cdp",), ("download", "cookie-file")]
    assert result.ok
    assert result.paths == ["/out/v.mp4"]
    assert result.source == "browser session over CDP"
    assert [c.value for c in read_netscape(cache)] == ["fresh"]
    assert sorted(p.name for p in tmp_path.iterdir()) == ["youtube-cookies.txt"]


def test_failed_cache_refresh_keeps_previous_cache(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cache = tmp_path / "youtube-cookies.txt"
    write_private(str(cache), GOOD, YOUTUBE)
    before = cache.read_text()
    events: list[tuple[str, ...]] = []

    def script(browser: str | None, cookie_file: str | None) -> DownloadResult:
        if browser == "chrome" or cookie_file == str(cache):
            return DownloadResult(ExitCode.COOKIE_PROBLEM)
        return DownloadResult(ExitCode.OK, paths=["/v.mp4"])

    def refuse(src, dst) -> None:  # noqa: ANN001
        raise PermissionError(13, "Permission denied", dst)

    monkeypatch.setattr(cookie_cache.os, "replace", refuse)
    orch = AuthOrchestrator(
        YOUTUBE,
        FakeDownloader(events, script),
        sources=_sources("chrome", "firefox"),
        cache_path=str(cache),
        cdp_extractor=FakeExtractor(events, FRESH),
    )
    result = orch.run(URL)

    assert result.ok
    assert result.source == "browser session over CDP"
    assert cache.read_text() == before
    assert sorted(p.name for p in tmp_path.iterdir()) == ["youtube-cookies.txt"]


def test_cdp_without_signed_in_cookies_is_retryable(tmp_path: Path) -> None:
    events: list[tuple[str, ...]] = []
    downloader = FakeDownloader(events, lambda browser, cookie_file: DownloadResult(ExitCode.AUTH_REQUIRED))
    orch = AuthOrchestrator(
        YOUTUBE,
        downloader,
        sources=_sources("chrome", "firefox"),
        cache_path=str(tmp_path / "youtube-cookies.txt"),
        cdp_extractor=FakeExtractor(events, SIGNED_OUT),
    )
    result = orch.run(URL)
    assert events == [("download", "chrome"), ("cdp",), ("download", "firefox")]
    assert result.attempts[1].code == ExitCode.AUTH_REQUIRED
    assert result.code == ExitCode.AUTH_REQUIRED


def test_terminal_download_failure_stops_immediately(tmp_path: Path) -> None:
    events: list[tuple[str, ...]] = []
    downloader = FakeDownloader(
        events, lambda browser, cookie_file: DownloadResult(ExitCode.FFMPEG_MISSING, hint="install ffmpeg")
    )
    orch = AuthOrchestrator(
        YOUTUBE,
        downloader,
        sources=_sources("chrome", "firefox"),
        cache_path=str(tmp_path / "youtube-cookies.txt"),
        cdp_extractor=FakeExtractor(events, GOOD),
    )
    result = orch.run(URL)
    assert events == [("download", "chrome")]
    assert result.code == ExitCode.FFMPEG_MISSING
    assert result.guidance == ["install ffmpeg"]


def test_missing_browser_executable_is_terminal(tmp_path: Path) -> None:
    events: list[tuple[str, ...]] = []
    downloader = FakeDownloader(events, lambda browser, cookie_file: DownloadResult(ExitCode.AUTH_REQUIRED))
    orch = AuthOrchestrator(
        YOUTUBE,
        downloader,
        sources=_sources("chrome", "firefox"),
        cache_path=str(tmp_path / "youtube-cookies.txt"),
        cdp_extractor=FakeExtractor(events, BrowserNotFound("Google Chrome not found")),
    )
    result = orch.run(URL)
    assert events == [("download", "chrome"), ("cdp",)]
    assert result.code == ExitCode.COOKIE_PROBLEM
    assert result.attempts[-1].outcome == Outcome.TERMINAL


def test_cache_is_tried_first(tmp_path: Path) -> None:
    cache = tmp_path / "youtube-cookies.txt"
    write_private(str(cache), GOOD, YOUTUBE)
    events: list[tuple[str, ...]] = []
    downloader = FakeDownloader(events, lambda browser, cookie_file: DownloadResult(ExitCode.OK, paths=["/v.mp4"]))
    orch = AuthOrchestrator(YOUTUBE, downloader, sources=_sources("chrome"), cache_path=str(cache))

    result = orch.run(URL)

    assert events == [("download", "cookie-file")]
    assert downloader.cookie_files == [str(cache)]
    assert result.source == "cookie cache"
    assert result.ok


def test_signed_out_jar_never_replaces_good_cache(tmp_path: Path) -> None:
    cache = tmp_path / "youtube-cookies.txt"
    write_private(str(cache), GOOD, YOUTUBE)
    events: list[tuple[str, ...]] = []

    def script(browser: str | None, cookie_file: str | None) -> DownloadResult:
        if browser is None:
            return DownloadResult(ExitCode.AUTH_REQUIRED)
        # The downloader dumps the browser's signed-out jar into --cookies.
        assert cookie_file != str(cache)
        write_private(cookie_file, SIGNED_OUT, YOUTUBE)
        return DownloadResult(ExitCode.AUTH_REQUIRED)

    orch = AuthOrchestrator(YOUTUBE, FakeDownloader(events, script), sources=_sources("chrome"), cache_path=str(cache))
    result = orch.run(URL)

    assert result.code == ExitCode.AUTH_REQUIRED
    assert [c.value for c in read_netscape(cache)] == ["good"]
    assert sorted(p.name for p in tmp_path.iterdir()) == ["youtube-cookies.txt"]


def test_signed_in_jar_is_promoted(tmp_path: Path) -> None:
    cache = tmp_path / "youtube-cookies.txt"
    events: list[tuple[str, ...]] = []

    def script(browser: str | None, cookie_file: str | None) -> DownloadResult:
        if browser == "chrome":
            return DownloadResult(ExitCode.COOKIE_PROBLEM)
        write_private(cookie_file, FRESH, YOUTUBE)
        return DownloadResult(ExitCode.OK, paths=["/v.mp4"])

    orch = AuthOrchestrator(
        YOUTUBE, FakeDownloader(events, script), sources=_sources("chrome", "firefox"), cache_path=str(cache)
    )
    result = orch.run(URL)

    assert result.ok
    assert result.source == "browser cookies (firefox)"
    assert [c.value for c in read_netscape(cache)] == ["fresh"]
    assert sorted(p.name for p in tmp_path.iterdir()) == ["youtube-cookies.txt"]


def test_unknown_platform_persists_nothing(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    events: list[tuple[str, ...]] = []
    downloader = FakeDownloader(events, lambda browser, cookie_file: DownloadResult(ExitCode.OK))
    orch = AuthOrchestrator(UNKNOWN_PLATFORM, downloader, sources=_sources("firefox"))
    assert orch.run("https://vimeo.com/1").ok
    assert downloader.cookie_files == [None]
    assert list(tmp_path.iterdir()) == []
