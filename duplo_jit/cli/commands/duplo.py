"""Broker session credentials."""

from __future__ import annotations

from typing import Optional

from duplo_jit.auth.session import resolve_duplo_session
from duplo_jit.credentials import DuploCredentials

from . import DebugOption, HostOption, InteractiveOption, NoCacheOption, PortOption, TokenOption, prepare, run_command


def duplo(
    host: Optional[str] = HostOption,
    token: Optional[str] = TokenOption,
    interactive: bool = InteractiveOption,
    port: int = PortOption,
    no_cache: bool = NoCacheOption,
    debug: bool = DebugOption,
) -> None:
    """Output a Duplo session token, logging in through the browser if needed."""

    def produce() -> DuploCredentials:
        base_url, cache = prepare(host, no_cache, debug)
        client, creds = resolve_duplo_session(base_url, token, cache, interactive=interactive, admin=True, port=port)
        client.close()
        return creds

    run_command(produce)
