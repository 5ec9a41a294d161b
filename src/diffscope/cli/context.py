"""diffscope context — print the ranked repository context for a diff.

Usage:
  git diff main | diffscope context - --description "fix off-by-one"

The formatted context goes to stdout; progress and warnings are printed
around it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from diffscope.cli.common import (
    console,
    load_cli_config,
    read_diff,
    resolve_db,
    run_search,
)
from diffscope.cli.errors import warn_empty_context
from diffscope.diff.parser import extract_hunks
from diffscope.rag.formatter import format_context


def context_cmd(
    diff_file: Annotated[
        str,
        typer.Argument(help="Unified diff file ('-' reads stdin)."),
    ],
    description: Annotated[
        str,
        typer.Option("--description", "-d", help="Natural-language description of the change."),
    ] = "",
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the chunk index (default: store.db_path)."),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Retrieval deadline in seconds (default: config)."),
    ] = None,
) -> None:
    """Retrieve and print the most relevant indexed code for DIFF_FILE."""
    cfg = load_cli_config()
    db_path = resolve_db(cfg, db)
    diff_text = read_diff(diff_file)
    parsed = extract_hunks(diff_text)

    bundle = run_search(cfg, db_path, description, diff_text, parsed, timeout)

    if not bundle:
        console.print(warn_empty_context())
        return

    console.print(f"  [dim]✓ {len(bundle)} snippets[/]")
    typer.echo(format_context(bundle))
