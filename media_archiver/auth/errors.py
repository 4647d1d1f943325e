"""Error taxonomy and outcome classification for the authentication bridge.

Lower layers (wire, CDP, launcher, discovery, cookie jar) only raise; the
orchestrator is the single place that turns an error into a retry decision.
"""

from __future__ import annotations

from enum import Enum, IntEnum


class ExitCode(IntEnum):
    """Outward result codes consumed by the CLI layer."""

    OK = 0
    USAGE = 2
    AUTH_REQUIRED = 20
    COOKIE_PROBLEM = 21
    RUNTIME_MISSING = 30
    FFMPEG_MISSING = 31
    DOWNLOADER_MISSING = 32
    DOWNLOAD_FAILED = 40


class Outcome(Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


class AuthError(Exception):
    """Base class for browser-session authentication failures."""

    suggestion = ""

    def __init__(self, reason: str = "", *, suggestion: str = "") -> None:
        self.reason = reason or self.__class__.__name__
        if suggestion:
            self.suggestion = suggestion
        super().__init__(self.reason)

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.reason}. Suggestion: {self.suggestion}"
        return self.reason


class BrowserNotFound(AuthError):
    suggestion = "Install Google Chrome or set ARCHIVER_CHROME_PATH to the chrome executable"


class ProfileDirectoryError(AuthError):
    suggestion = "Check that the application state directory is writable"


class PortAllocationFailure(AuthError):
    pass


class LaunchError(AuthError):
    """The browser executable exists but the process could not be started."""


class DevToolsTimeout(AuthError):
    suggestion = "Close other browser windows using the same profile and retry"


class TransportError(AuthError):
    """Network-level failure on the DevTools WebSocket."""


class HandshakeFailure(TransportError):
    pass


class FrameProtocolError(TransportError):
    pass


class ConnectionClosed(TransportError):
    """The peer sent a close frame (end of stream)."""


class CDPProtocolError(AuthError):
    pass


class NotAuthenticated(AuthError):
    suggestion = "Run `media-archiver login <platform>` and sign in in the opened window"


class CookieFileIOError(AuthError):
    pass


_TERMINAL_ERRORS: tuple[type[AuthError], ...] = (BrowserNotFound, ProfileDirectoryError)


def classify_error(exc: BaseException) -> tuple[Outcome, ExitCode]:
    """Map an extraction error to its retry decision and outward code."""
    if isinstance(exc, _TERMINAL_ERRORS):
        return Outcome.TERMINAL, ExitCode.COOKIE_PROBLEM
    if isinstance(exc, NotAuthenticated):
        return Outcome.RETRYABLE, ExitCode.AUTH_REQUIRED
    if isinstance(exc, AuthError):
        return Outcome.RETRYABLE, ExitCode.COOKIE_PROBLEM
    return Outcome.TERMINAL, ExitCode.DOWNLOAD_FAILED


def classify_code(code: ExitCode) -> Outcome:
    if code == ExitCode.OK:
        return Outcome.SUCCESS
    if code in (ExitCode.AUTH_REQUIRED, ExitCode.COOKIE_PROBLEM):
        return Outcome.RETRYABLE
    return Outcome.TERMINAL


__all__ = [
    "AuthError",
    "BrowserNotFound",
    "CDPProtocolError",
    "ConnectionClosed",
    "CookieFileIOError",
    "DevToolsTimeout",
    "ExitCode",
    "FrameProtocolError",
    "HandshakeFailure",
    "LaunchError",
    "NotAuthenticated",
    "Outcome",
    "PortAllocationFailure",
    "ProfileDirectoryError",
    "TransportError",
    "classify_code",
    "classify_error",
]
