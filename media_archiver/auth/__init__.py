"""
Browser-session authentication for the downloader.

Each module provides focused functionality:
- errors: Error taxonomy, exit codes, outcome classification
- wire: Minimal RFC 6455 WebSocket client (handshake and framing)
- session_cdp: CDP request/response correlation over one connection
- discovery: DevTools HTTP readiness probe and page target lookup
- launcher: Isolated-profile browser process with guaranteed teardown
- cookies: Netscape cookie-jar codec and the authentication heuristic
- cookie_cache: Persistent per-platform cache and temporary jars
- platforms: Platform profiles and their registry
- browsers: Auth sources and browser autodetection
- downloader: yt-dlp adapter and failure classification
- extract: Cookie extraction and interactive login over CDP
- orchestrator: Multi-source fallback state machine
"""

from .config import AuthConfig
from .errors import AuthError, ExitCode, Outcome
from .orchestrator import AuthOrchestrator, AuthResult
from .platforms import BILIBILI, YOUTUBE, PlatformProfile, PlatformRegistry

__all__ = [
    "AuthConfig",
    "AuthError",
    "AuthOrchestrator",
    "AuthResult",
    "BILIBILI",
    "ExitCode",
    "Outcome",
    "PlatformProfile",
    "PlatformRegistry",
    "YOUTUBE",
]
