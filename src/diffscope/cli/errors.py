"""diffscope rich error messages with actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from diffscope.cli.errors import err_no_db
    console.print(err_no_db(".diffscope.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*."""
    env_map = {
        "openai": "OPENAI_API_KEY",
        "anthropic": "ANTHROPIC_API_KEY",
        "cohere": "COHERE_API_KEY",
        "gemini": "GEMINI_API_KEY",
        "mistral": "MISTRAL_API_KEY",
        "voyage": "VOYAGE_API_KEY",
        "azure": "AZURE_API_KEY",
    }
    env_var = env_map.get(provider.lower(), f"{provider.upper()}_API_KEY")
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".diffscope.db") -> str:
    """No index database at *db_path*."""
    return (
        f"[red]Error:[/] No index database found at '{db_path}'.\n"
        "  Run the repository indexer first, or use:  --db <path-to-index>"
    )


def err_diff_not_found(path: str) -> str:
    """Diff file does not exist."""
    return (
        f"[red]Error:[/] Diff file not found: '{path}'\n"
        "  Use:  git diff > change.diff  and pass the file, or '-' to read stdin."
    )


def err_embedding_failed(detail: str) -> str:
    """Query embedding failed; no context can be produced."""
    return (
        f"[red]Error:[/] Could not embed the query: {detail}\n"
        "  Check the embedding model in diffscope.yaml and your provider API key, then re-run."
    )


def err_backend_failed(detail: str) -> str:
    """Fallback retrieval failed; the index is unusable for this request."""
    return (
        f"[red]Error:[/] Index query failed: {detail}\n"
        "  Run:  diffscope status  to check the index and embedding model."
    )


def err_timeout(seconds: float | None) -> str:
    """Retrieval exceeded its deadline."""
    return (
        f"[red]Error:[/] Context retrieval timed out after {seconds}s.\n"
        "  Use:  --timeout <seconds>  or raise retrieval.timeout_seconds in diffscope.yaml."
    )


def err_config(detail: str) -> str:
    """Invalid configuration file."""
    return (
        f"[red]Error:[/] Invalid configuration.\n  {detail}\n"
        "  Fix diffscope.yaml (or ~/.diffscope/config.yaml) and re-run."
    )


def err_output_path_unsafe(path: str) -> str:
    """--output path fails security validation."""
    return (
        f"[red]Error:[/] Output path is not allowed: '{path}'\n"
        "  Use a path within the current working directory."
    )


def warn_empty_context() -> str:
    """Retrieval succeeded but found nothing relevant."""
    return (
        "[yellow]⚠[/] No relevant repository context found.\n"
        "  Continuing with an empty context. Run:  diffscope status  to check the index."
    )
