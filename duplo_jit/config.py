"""Configuration helpers for duplo-jit."""

from __future__ import annotations

import os
import sys
from pathlib import Path

DEFAULT_TIMEOUT_SECONDS = 20.0
TOOL_NAME = "duplo-jit"


def sanitize_base_url(url: str) -> str:
    """Ensure the base URL never ends with a trailing slash."""

    return url.rstrip("/")


def require_https(url: str | None) -> str:
    """Return the sanitized host URL, refusing anything but https://."""
    if not url or not url.startswith("https://"):
        raise ValueError("--host must be present and start with https://")
    return sanitize_base_url(url)


def host_origin(url: str) -> str:
    """Strip the scheme, leaving the part of the host used in cache keys."""
    return url[len("https://"):] if url.startswith("https://") else url


def user_cache_dir() -> Path:
    """Return the per-user cache root for the current platform."""
    if sys.platform == "win32":
        local = os.environ.get("LOCALAPPDATA")
        if not local:
            raise OSError("%LOCALAPPDATA% is not defined")
        return Path(local)
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches"
    xdg = os.environ.get("XDG_CACHE_HOME")
    if xdg and os.path.isabs(xdg):
        return Path(xdg)
    return Path.home() / ".cache"
