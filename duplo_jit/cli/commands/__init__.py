"""CLI command modules.

Every command computes one credential document and hands it to
:func:`run_command`, the only place that writes to stdout or ends the
process with a failure status.
"""

from __future__ import annotations

import logging
from typing import Callable

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from duplo_jit.cache import CacheConfig, CredentialCache
from duplo_jit.config import TOOL_NAME, require_https
from duplo_jit.credentials import Credential, to_json
from duplo_jit.exceptions import DuploJitError

from ..constants import ENV_HOST, ENV_TOKEN

logger = logging.getLogger(__name__)

# Standard output carries the credential document and nothing else.
err_console = Console(stderr=True)

HostOption = typer.Option(None, "--host", envvar=ENV_HOST, help="Duplo API base URL (must start with https://)")
TokenOption = typer.Option(None, "--token", envvar=ENV_TOKEN, help="Duplo API token")
InteractiveOption = typer.Option(
    False, "--interactive", help="Allow getting Duplo credentials via an interactive browser session"
)
PortOption = typer.Option(0, "--port", min=0, max=65535, help="Port to use for the local web server (0: any free port)")
NoCacheOption = typer.Option(False, "--no-cache", help="Disable caching (not recommended)")
DebugOption = typer.Option(False, "--debug", help="Turn on verbose (debugging) output")
TenantOption = typer.Option(None, "--tenant", help="Get credentials for the given tenant (name or ID)")


def setup_logging(debug: bool) -> None:
    """Send all log output to stderr, at DEBUG with --debug and WARNING otherwise."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_time=False, show_path=False)],
        force=True,
    )


def prepare(host: str | None, no_cache: bool, debug: bool, tool: str = TOOL_NAME) -> tuple[str, CredentialCache]:
    """Validate the host and build the cache for this run."""
    setup_logging(debug)
    host = require_https(host)
    return host, CredentialCache(CacheConfig.for_tool(tool, disabled=no_cache))


def fail(message: str) -> None:
    """Report a terminal failure on stderr and exit non-zero."""
    err_console.print(f"{TOOL_NAME}: {escape(message)}", style="red", highlight=False, soft_wrap=True)
    raise typer.Exit(1)


def run_command(produce: Callable[[], Credential]) -> None:
    """Run ``produce`` and print its credential as the sole stdout document."""
    try:
        credential = produce()
    except (DuploJitError, ValueError) as e:
        logger.debug("command failed", exc_info=True)
        fail(str(e))
        return
    typer.echo(to_json(credential))
