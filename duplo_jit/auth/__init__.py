"""Authentication for duplo-jit.

Lightweight imports (types) are eager. Heavyweight imports (flow and
session, which pull in http.server, threading, webbrowser and the probes)
are lazy so that importing the package stays cheap.
"""

from .types import TokenOutcome, TokenResult


def __getattr__(name: str):
    if name in ("acquire_interactive_token", "build_login_url", "require_token"):
        from . import flow

        return getattr(flow, name)
    if name == "resolve_duplo_session":
        from .session import resolve_duplo_session

        return resolve_duplo_session
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "acquire_interactive_token",
    "build_login_url",
    "require_token",
    "resolve_duplo_session",
    "TokenOutcome",
    "TokenResult",
]
