"""diffscope status — show configuration and chunk index overview."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel

from diffscope.cli.common import console, load_cli_config
from diffscope.config import DiffscopeConfig
from diffscope.db.store import SqliteVecStore
from diffscope.errors import BackendQueryError


def status_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the chunk index (default: store.db_path)."),
    ] = None,
) -> None:
    """Show the active configuration and what the chunk index contains."""
    cfg = load_cli_config()
    db_path = db if db is not None else Path(cfg.store.db_path)

    _show_config_panel(cfg, db_path)

    if not db_path.exists():
        console.print(
            Panel(
                "[yellow]No index database found.[/]\n"
                "  Run the repository indexer first, or use:  --db <path-to-index>",
                title="[bold]Index[/]",
                expand=False,
            )
        )
        return

    _show_index_panel(cfg, db_path)


def _show_config_panel(cfg: DiffscopeConfig, db_path: Path) -> None:
    r = cfg.retrieval
    timeout = f"{r.timeout_seconds}s" if r.timeout_seconds is not None else "none"
    lines = [
        f"Embedding model:  [bold]{cfg.embedding.model}[/]",
        f"Review model:     {cfg.review.model}",
        f"Index:            {db_path}",
        f"Retrieval:        hunk cap {r.hunk_candidate_limit}, fallback k {r.fallback_k}, "
        f"min matches {r.min_hunk_matches}, top {r.max_results}",
        f"Concurrency:      {r.max_concurrency} queries, deadline {timeout}",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Configuration[/]", expand=False))


def _show_index_panel(cfg: DiffscopeConfig, db_path: Path) -> None:
    store = SqliteVecStore(db_path, cfg.embedding.model)
    try:
        stats = store.index_stats()
    except BackendQueryError as exc:
        console.print(
            Panel(f"[red]Unreadable index:[/] {exc}", title="[bold]Index[/]", expand=False)
        )
        raise typer.Exit(1)

    size_mb = db_path.stat().st_size / (1024 * 1024)
    lines = [
        f"Database:   {db_path} ({size_mb:.1f} MB)",
        f"Chunks:     [bold]{stats.chunks:,}[/] across [bold]{stats.files:,}[/] files",
        f"Vec tables: [bold]{len(stats.vec_tables)}[/]",
    ]
    for table in stats.vec_tables:
        marker = " [green]← active[/]" if table == store.vec_table else ""
        lines.append(f"  {table}{marker}")
    if stats.embedded is None:
        lines.append(
            f"[yellow]⚠ No embeddings for '{cfg.embedding.model}'.[/] "
            "Re-index or set embedding.model to match the index."
        )
    else:
        lines.append(f"Embedded:   {stats.embedded:,} chunks")

    console.print(Panel("\n".join(lines), title="[bold]Index[/]", expand=False))
