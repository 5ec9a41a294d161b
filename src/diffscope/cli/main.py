"""diffscope CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from diffscope.cli.common import configure_logging
from diffscope.cli.context import context_cmd
from diffscope.cli.hunks import hunks_cmd
from diffscope.cli.review import review_cmd
from diffscope.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("diffscope")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"diffscope {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="diffscope",
    help=(
        "diffscope — diff-aware repository context for code review.\n\n"
        "  diffscope context  Ranked code snippets relevant to a diff.\n"
        "  diffscope review   Same context, handed to an LLM reviewer."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log retrieval details to stderr."),
    ] = False,
) -> None:
    """diffscope — diff-aware repository context for code review."""
    configure_logging(verbose)


app.command("hunks")(hunks_cmd)
app.command("context")(context_cmd)
app.command("review")(review_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed diffscope version."""
    typer.echo(f"diffscope {_installed_version()}")


if __name__ == "__main__":
    app()
