"""Runtime settings read from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .layout import PagesPerSheet

_TRUTHY = {"1", "true", "yes", "on"}


def _flag(environ: Mapping[str, str], name: str, default: bool) -> bool:
    value = environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class Settings:
    """Configuration for the composer and the web front end."""

    max_upload_mb: int = 200
    default_pages_per_sheet: PagesPerSheet = PagesPerSheet.ONE
    compress: bool = True
    log_level: str = "INFO"
    host: str = "127.0.0.1"
    port: int = 5000
    max_sessions: int = 32
    session_ttl_seconds: int = 1800

    @property
    def max_content_length(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Build settings from ``NUPSHEET_*`` variables, falling back to defaults.

        Raises:
            ValueError: If a numeric variable does not parse.
            UnsupportedModeError: If the default pages-per-sheet is not 1, 2 or 4.
        """

        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            max_upload_mb=int(env.get("NUPSHEET_MAX_UPLOAD_MB", defaults.max_upload_mb)),
            default_pages_per_sheet=PagesPerSheet.coerce(
                env.get("NUPSHEET_DEFAULT_PAGES_PER_SHEET", defaults.default_pages_per_sheet)
            ),
            compress=_flag(env, "NUPSHEET_COMPRESS", defaults.compress),
            log_level=env.get("NUPSHEET_LOG_LEVEL", defaults.log_level).upper(),
            host=env.get("NUPSHEET_HOST", defaults.host),
            port=int(env.get("NUPSHEET_PORT", defaults.port)),
            max_sessions=int(env.get("NUPSHEET_MAX_SESSIONS", defaults.max_sessions)),
            session_ttl_seconds=int(
                env.get("NUPSHEET_SESSION_TTL_SECONDS", defaults.session_ttl_seconds)
            ),
        )


__all__ = ["Settings"]
