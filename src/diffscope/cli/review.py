"""diffscope review — retrieve context for a diff and ask an LLM to review it.

Usage:
  diffscope review change.diff --description "fix off-by-one" [--output review.md]

Flags:
  --description TEXT  PR description, prepended to the diff for retrieval
  --db PATH           Path to the chunk index
  --output PATH       Write the review here (path traversal blocked)
  --dry-run           Show retrieval + prompt without calling the LLM
  --yes               Skip the overwrite prompt
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from diffscope.cli.common import (
    console,
    load_cli_config,
    read_diff,
    require_api_key,
    resolve_db,
    run_search,
)
from diffscope.cli.errors import err_output_path_unsafe, warn_empty_context
from diffscope.diff.parser import extract_hunks
from diffscope.rag.formatter import format_context
from diffscope.rag.llm_client import count_tokens
from diffscope.review.prompt import build_review_prompt, review
from diffscope.review.writer import (
    add_sources,
    check_overwrite,
    validate_output_path,
    write_output,
)


def review_cmd(
    diff_file: Annotated[
        str,
        typer.Argument(help="Unified diff file ('-' reads stdin)."),
    ],
    description: Annotated[
        str,
        typer.Option("--description", "-d", help="Pull request description."),
    ] = "",
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the chunk index (default: store.db_path)."),
    ] = None,
    output: Annotated[
        str | None,
        typer.Option("--output", "-o", help="Write the review to this file instead of stdout."),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", help="Retrieval deadline in seconds (default: config)."),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show the assembled prompt without calling the LLM."),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompts."),
    ] = False,
) -> None:
    """Review DIFF_FILE with an LLM, grounded on retrieved repository context."""
    cfg = load_cli_config()

    output_path: Path | None = None
    if output is not None:
        try:
            output_path = validate_output_path(output)
        except ValueError:
            console.print(err_output_path_unsafe(output))
            raise typer.Exit(1)
        if not check_overwrite(output_path, yes=yes):
            console.print("  [dim]Cancelled.[/]")
            raise typer.Exit(0)

    db_path = resolve_db(cfg, db)
    diff_text = read_diff(diff_file)
    parsed = extract_hunks(diff_text)

    # ---- Step 1/2: Retrieve ----
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console,
    ) as prog:
        prog.add_task("[1/2] Retrieving context…", total=None)
        bundle = run_search(cfg, db_path, description, diff_text, parsed, timeout)

    if bundle:
        console.print(f"  [dim]✓ Retrieved {len(bundle)} snippets[/]")
    else:
        console.print(warn_empty_context())

    prompt = build_review_prompt(description, diff_text, format_context(bundle))
    prompt_tokens = count_tokens(cfg.review.model, prompt.system_prompt + prompt.user_message)

    if dry_run:
        console.print("\n[bold]Dry run: assembled prompt[/]")
        console.print(f"  Prompt: {prompt_tokens:,} tokens, {len(bundle)} snippets")
        typer.echo(prompt.user_message)
        console.print("\n[dim]No LLM review performed.[/]")
        return

    require_api_key(cfg.review.model)

    # ---- Step 2/2: Review ----
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        transient=True,
        console=console,
    ) as prog:
        prog.add_task(f"[2/2] Reviewing with {cfg.review.model}…", total=None)
        content = review(prompt, model=cfg.review.model, max_tokens=cfg.review.max_tokens)

    content = add_sources(content, bundle)

    if output_path is None:
        typer.echo(content)
        return

    write_output(output_path, content)
    console.print(f"\n  [green]✓[/] Written to [bold]{output_path}[/]")
