"""Entry point for the ``duplo-jit`` command."""

from __future__ import annotations

import typer

from duplo_jit import __version__
from duplo_jit.config import TOOL_NAME

from .commands import aws, duplo, k8s

app = typer.Typer(
    name=TOOL_NAME,
    help="Just-in-time AWS and Kubernetes credentials from Duplo, for credential_process and kubectl.",
    no_args_is_help=True,
    add_completion=False,
)

app.command("aws")(aws.aws)
app.command("duplo")(duplo.duplo)
app.command("k8s")(k8s.k8s)


def _print_version(value: bool = True) -> None:
    if value:
        typer.echo(f"{TOOL_NAME} version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    show_version: bool = typer.Option(
        False, "--version", help="Output version information and exit.", callback=_print_version, is_eager=True
    ),
) -> None:
    """Each command prints a single JSON credential document on stdout."""


@app.command("version")
def version() -> None:
    """Output version information."""
    _print_version()


if __name__ == "__main__":
    app()
