"""Thin adapter around the external downloader (yt-dlp).

The orchestrator only needs ``run(...) -> DownloadResult``; everything about
formats and output templates stays with the caller's base arguments.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from dataclasses import dataclass, field
from typing import Protocol

from .errors import ExitCode
from .platforms import PlatformProfile

log = logging.getLogger(__name__)

PATH_MARKER = "__ARCHIVER_PATH__"

DEFAULT_BASE_ARGS: tuple[str, ...] = (
    "--output",
    "%(title)s.%(ext)s",
    "--embed-thumbnail",
    "--add-metadata",
    "-f",
    "bestvideo[vcodec^=avc1]+bestaudio[ext=m4a]/best[ext=mp4]/best",
    "--merge-output-format",
    "mp4",
)


@dataclass
class DownloadResult:
    code: ExitCode
    paths: list[str] = field(default_factory=list)
    hint: str = ""


class Downloader(Protocol):
    def run(self, target_url: str, *, browser: str | None = None, cookie_file: str | None = None) -> DownloadResult: ...


def login_command(platform: PlatformProfile) -> str:
    return f"media-archiver login {platform.id.strip() or '<platform>'}"


def classify_failure(output: str, platform: PlatformProfile) -> tuple[ExitCode, str]:
    """Map downloader output to an exit code and one actionable hint."""
    lower = output.lower()
    login_cmd = login_command(platform)
    target = platform.display_name or "the site"

    if "could not copy" in lower and "cookie database" in lower:
        return ExitCode.COOKIE_PROBLEM, (
            "The browser cookie database is locked. Quit the browser completely (including background "
            f"processes) and retry, switch to Firefox, or run `{login_cmd}`."
        )
    if "failed to decrypt with dpapi" in lower:
        return ExitCode.COOKIE_PROBLEM, f"Browser cookies could not be decrypted. Switch to Firefox or run `{login_cmd}`."
    if "app-bound" in lower and "cookie" in lower and "encrypt" in lower:
        return ExitCode.COOKIE_PROBLEM, (
            "Chrome App-Bound cookie encryption blocks reading its cookie database. "
            f"Run `{login_cmd}` or use Firefox/Edge cookies instead."
        )
    if "permission denied" in lower and "cookies" in lower:
        return ExitCode.COOKIE_PROBLEM, "Reading browser cookies was denied. Check browser processes and file permissions."
    if "cannot decrypt v11 cookies: no key found" in lower:
        return ExitCode.COOKIE_PROBLEM, (
            "Browser cookies could not be decrypted (keyring unavailable). Run from a desktop session, "
            f"switch to Firefox, or run `{login_cmd}`."
        )
    if "sign in to confirm you're not a bot" in lower or "sign in to confirm you’re not a bot" in lower:
        return ExitCode.AUTH_REQUIRED, f"Sign in to {target} in your browser and retry, or run `{login_cmd}`."
    if "sign in to confirm your age" in lower or (
        "this video may be inappropriate for some users" in lower and "sign in" in lower
    ):
        return ExitCode.AUTH_REQUIRED, (
            f"{target} requires sign-in and an extra confirmation. Open the video in a signed-in browser, "
            f"confirm, and retry; or run `{login_cmd}`."
        )
    if "use --cookies-from-browser" in lower or "use --cookies" in lower:
        for word in ("login", "sign in", "premium member", "members only", "members-only", "authentication"):
            if word in lower:
                return ExitCode.AUTH_REQUIRED, (
                    f"{target} requires a signed-in account with access. Sign in in your browser and retry, "
                    f"or run `{login_cmd}`."
                )
    if "cookies file" in lower and "netscape" in lower:
        return ExitCode.COOKIE_PROBLEM, "The cookie file is malformed."
    if "no supported javascript runtime could be found" in lower:
        return ExitCode.RUNTIME_MISSING, "No JavaScript runtime available. Make sure deno or node is on PATH."
    if "ffmpeg not found" in lower:
        return ExitCode.FFMPEG_MISSING, "ffmpeg is not available. Put ffmpeg/ffprobe on PATH."
    if "ffprobe not found" in lower:
        return ExitCode.FFMPEG_MISSING, "ffprobe is not available. Put ffmpeg/ffprobe on PATH."
    return ExitCode.DOWNLOAD_FAILED, "Download failed. Try `yt-dlp -U`, then check whether the cookies expired."


def extract_moved_paths(stdout: str) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for line in stdout.splitlines():
        v = line.strip()
        if not v.startswith(PATH_MARKER):
            continue
        p = v[len(PATH_MARKER) :].strip().strip('"').strip()
        if p and p not in seen:
            seen.add(p)
            out.append(p)
    return out


class YtDlpDownloader:
    def __init__(
        self,
        platform: PlatformProfile,
        *,
        executable: str = "yt-dlp",
        base_args: list[str] | None = None,
        browser_profile: str = "",
        quiet: bool = False,
    ) -> None:
        self.platform = platform
        self.executable = executable
        self.base_args = list(base_args) if base_args is not None else list(DEFAULT_BASE_ARGS)
        self.browser_profile = browser_profile
        self.quiet = quiet

    def build_args(self, target_url: str, *, browser: str | None = None, cookie_file: str | None = None) -> list[str]:
        args = [*self.base_args, "--print", f"after_move:{PATH_MARKER}%(filepath)s"]
        if browser:
            browser_arg = f"{browser}:{self.browser_profile}" if self.browser_profile else browser
            args += ["--cookies-from-browser", browser_arg]
        if cookie_file:
            # --cookies is read and written back: the downloader dumps its jar here.
            args += ["--cookies", cookie_file]
        args.append(target_url)
        return args

    def run(self, target_url: str, *, browser: str | None = None, cookie_file: str | None = None) -> DownloadResult:
        cmd = [self.executable, *self.build_args(target_url, browser=browser, cookie_file=cookie_file)]
        env = {**os.environ, "PYTHONUTF8": "1", "PYTHONIOENCODING": "utf-8"}
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                env=env,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError:
            return DownloadResult(ExitCode.DOWNLOADER_MISSING, hint=f"Downloader not found: {self.executable}")
        except OSError as exc:
            log.error("Cannot start downloader: %s", exc)
            return DownloadResult(ExitCode.DOWNLOAD_FAILED, hint=str(exc))

        captured: list[str] = []
        assert proc.stdout is not None
        for line in proc.stdout:
            captured.append(line)
            if not self.quiet and not line.strip().startswith(PATH_MARKER):
                sys.stdout.write(line)
        returncode = proc.wait()
        output = "".join(captured)

        if returncode == 0:
            return DownloadResult(ExitCode.OK, paths=extract_moved_paths(output))
        code, hint = classify_failure(output, self.platform)
        if code == ExitCode.DOWNLOAD_FAILED:
            log.warning("Downloader exit code: %d", returncode)
        return DownloadResult(code, hint=hint)


__all__ = [
    "DEFAULT_BASE_ARGS",
    "DownloadResult",
    "Downloader",
    "PATH_MARKER",
    "YtDlpDownloader",
    "classify_failure",
    "extract_moved_paths",
    "login_command",
]
