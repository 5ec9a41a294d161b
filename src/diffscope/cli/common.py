"""Helpers shared by the diffscope CLI commands."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from diffscope.config import ConfigError, DiffscopeConfig, load_config
from diffscope.cli.errors import (
    err_backend_failed,
    err_config,
    err_diff_not_found,
    err_embedding_failed,
    err_no_api_key,
    err_no_db,
    err_timeout,
)
from diffscope.db.store import SqliteVecStore
from diffscope.diff.parser import FileDiff
from diffscope.errors import BackendQueryError, EmbeddingError, RetrievalTimeoutError
from diffscope.rag.aggregator import ContextBundle
from diffscope.rag.embedder import LiteLLMEmbedder
from diffscope.rag.engine import ContextEngine, build_query_text
from diffscope.rag.llm_client import provider_of, validate_api_key

console = Console()

STDIN = "-"


def configure_logging(verbose: bool) -> None:
    """Route library logging through rich (stderr). DEBUG with --verbose, else WARNING."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    for noisy in ("LiteLLM", "litellm", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def load_cli_config() -> DiffscopeConfig:
    """Load config, exiting with an actionable message on ConfigError."""
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1)


def read_diff(diff_file: str) -> str:
    """Read diff text from *diff_file*, or from stdin when it is '-'."""
    if diff_file == STDIN:
        return sys.stdin.read()
    path = Path(diff_file)
    if not path.is_file():
        console.print(err_diff_not_found(diff_file))
        raise typer.Exit(1)
    return path.read_text(encoding="utf-8", errors="replace")


def resolve_db(cfg: DiffscopeConfig, db: Path | None) -> Path:
    """Return the index path (--db beats config), exiting if it does not exist."""
    db_path = db if db is not None else Path(cfg.store.db_path)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)
    return db_path


def build_engine(cfg: DiffscopeConfig, db_path: Path) -> ContextEngine:
    """Wire the sqlite-vec store and LiteLLM embedder into a ContextEngine."""
    store = SqliteVecStore(db_path, cfg.embedding.model)
    embedder = LiteLLMEmbedder(
        model=cfg.embedding.model,
        max_input_chars=cfg.embedding.max_input_chars,
        num_retries=cfg.embedding.num_retries,
    )
    return ContextEngine(store, embedder, cfg.retrieval)


def require_api_key(model: str) -> None:
    """Exit with an actionable message if *model*'s provider key is missing."""
    try:
        validate_api_key(model)
    except EnvironmentError:
        console.print(err_no_api_key(provider_of(model)))
        raise typer.Exit(1)


def run_search(
    cfg: DiffscopeConfig,
    db_path: Path,
    description: str,
    diff_text: str,
    parsed: list[FileDiff],
    timeout: float | None,
) -> ContextBundle:
    """Run context retrieval, mapping typed errors to messages + exit code 1."""
    require_api_key(cfg.embedding.model)
    engine = build_engine(cfg, db_path)
    query_text = build_query_text(description, diff_text)
    deadline = timeout if timeout is not None else cfg.retrieval.timeout_seconds
    try:
        return engine.search_context_sync(query_text, parsed, timeout=deadline)
    except EmbeddingError as exc:
        console.print(err_embedding_failed(str(exc)))
    except BackendQueryError as exc:
        console.print(err_backend_failed(str(exc)))
    except RetrievalTimeoutError:
        console.print(err_timeout(deadline))
    raise typer.Exit(1)
