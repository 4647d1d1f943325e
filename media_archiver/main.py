"""
Command line entry point.

Subcommands:
- login <platform>: sign in once in a visible managed browser window
- cookies <platform>: export the managed profile's cookies to a Netscape file
- get <url>: download with the multi-source authentication fallback
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any

from . import __version__
from .auth.browsers import build_auth_sources
from .auth.config import AuthConfig
from .auth.cookie_cache import cache_file_path, ensure_state_dir, replace_private
from .auth.downloader import YtDlpDownloader
from .auth.errors import AuthError, ExitCode, classify_error
from .auth.extract import CdpCookieExtractor, platform_is_authenticated
from .auth.orchestrator import AuthOrchestrator
from .auth.platforms import UNKNOWN_PLATFORM, PlatformProfile, PlatformRegistry

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

logger = logging.getLogger("media_archiver")


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log collectors."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": self.formatTime(record),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(env: dict[str, str] | None = None) -> None:
    env = os.environ if env is None else env
    level = _LEVELS.get(env.get("ARCHIVER_LOG_LEVEL", "").strip().lower(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    if env.get("ARCHIVER_LOG_FORMAT", "").strip().lower() == "json":
        for handler in logging.getLogger().handlers:
            handler.setFormatter(JsonFormatter())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="media-archiver",
        description="Download media using your own signed-in browser session",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Sign in once in a managed browser window")
    login.add_argument("platform", help="Platform id, e.g. youtube or bilibili")

    cookies = sub.add_parser("cookies", help="Export cookies from the managed browser profile")
    cookies.add_argument("platform", help="Platform id, e.g. youtube or bilibili")
    cookies.add_argument("--output", "-o", default="", help="Cookie file to write (default: the cookie cache)")
    cookies.add_argument("--headed", action="store_true", help="Show the browser window while exporting")

    get = sub.add_parser("get", help="Download a URL")
    get.add_argument("url")
    get.add_argument("--quiet", "-q", action="store_true", help="Do not echo downloader output")
    return parser


def _resolve_platform(registry: PlatformRegistry, platform_id: str) -> PlatformProfile | None:
    platform = registry.by_id(platform_id.strip().lower())
    if platform is None:
        logger.error("Unknown platform %r (known: %s)", platform_id, ", ".join(registry.ids()))
    return platform


def _report_auth_error(exc: AuthError) -> int:
    _outcome, code = classify_error(exc)
    logger.error("%s", exc)
    return int(code)


def cmd_login(config: AuthConfig, registry: PlatformRegistry, args: argparse.Namespace) -> int:
    platform = _resolve_platform(registry, args.platform)
    if platform is None:
        return int(ExitCode.USAGE)
    try:
        path = CdpCookieExtractor(config).interactive_login(platform)
    except AuthError as exc:
        return _report_auth_error(exc)
    except (KeyboardInterrupt, EOFError):
        logger.warning("Login cancelled")
        return int(ExitCode.AUTH_REQUIRED)
    logger.info("Signed in. Cookie cache: %s", path)
    return int(ExitCode.OK)


def cmd_cookies(config: AuthConfig, registry: PlatformRegistry, args: argparse.Namespace) -> int:
    platform = _resolve_platform(registry, args.platform)
    if platform is None:
        return int(ExitCode.USAGE)
    try:
        cookies = CdpCookieExtractor(config).extract(platform, headless=not args.headed)
        if not platform_is_authenticated(cookies, platform):
            logger.warning(
                "The managed profile is not signed in to %s; run: media-archiver login %s",
                platform.display_name,
                platform.id,
            )
            return int(ExitCode.AUTH_REQUIRED)
        output = args.output or cache_file_path(platform, config)
        if not args.output:
            ensure_state_dir(config.state_dir)
        count = replace_private(output, cookies, platform)
    except AuthError as exc:
        return _report_auth_error(exc)
    logger.info("Wrote %d cookies to %s", count, output)
    return int(ExitCode.OK)


def cmd_get(config: AuthConfig, registry: PlatformRegistry, args: argparse.Namespace) -> int:
    platform = registry.for_url(args.url) or UNKNOWN_PLATFORM
    cache_path = cache_file_path(platform, config) if platform.id else ""
    if not platform.id:
        logger.info("No platform profile matches this URL; cookies will not be cached")
    downloader = YtDlpDownloader(
        platform,
        executable=config.ytdlp_path,
        browser_profile=config.browser_profile,
        quiet=args.quiet,
    )
    orchestrator = AuthOrchestrator(
        platform,
        downloader,
        sources=build_auth_sources(config),
        cache_path=cache_path,
        cdp_extractor=CdpCookieExtractor(config),
        pinned=bool(config.browser),
    )
    result = orchestrator.run(args.url)
    for path in result.paths:
        print(path)
    if result.ok:
        logger.info("Done via %s", result.source)
    elif result.code != ExitCode.AUTH_REQUIRED:
        for line in result.guidance:
            logger.error("%s", line)
    return int(result.code)


COMMANDS = {
    "login": cmd_login,
    "cookies": cmd_cookies,
    "get": cmd_get,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point; returns the process exit code."""
    configure_logging()
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as exc:
        # argparse exits 2 on bad usage and 0 for --help/--version.
        return int(exc.code or 0)
    config = AuthConfig.from_env()
    registry = PlatformRegistry()
    return COMMANDS[args.command](config, registry, args)


if __name__ == "__main__":
    sys.exit(main())
