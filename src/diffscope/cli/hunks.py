"""diffscope hunks — show the changed line ranges extracted from a diff."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.table import Table

from diffscope.cli.common import console, read_diff
from diffscope.diff.parser import extract_hunks


def hunks_cmd(
    diff_file: Annotated[
        str,
        typer.Argument(help="Unified diff file ('-' reads stdin)."),
    ],
) -> None:
    """List per-file hunks (new-file line ranges) found in DIFF_FILE."""
    files = extract_hunks(read_diff(diff_file))
    if not files:
        console.print("[yellow]No file entries found in the diff.[/]")
        return

    table = Table(title="Diff hunks")
    table.add_column("File")
    table.add_column("Lines", justify="right")
    for file_diff in files:
        if not file_diff.hunks:
            table.add_row(file_diff.filepath, "[dim](no hunks)[/]")
            continue
        for hunk in file_diff.hunks:
            table.add_row(file_diff.filepath, f"{hunk.start_line}-{hunk.end_line}")
    console.print(table)

    total = sum(len(f.hunks) for f in files)
    console.print(f"  [dim]{len(files)} files, {total} hunks[/]")
