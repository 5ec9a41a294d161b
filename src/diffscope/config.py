"""diffscope configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (DIFFSCOPE_EMBEDDING_MODEL, DIFFSCOPE_REVIEW_MODEL, DIFFSCOPE_DB)
  3. Per-repository diffscope.yaml  (in the working directory)
  4. Global ~/.diffscope/config.yaml  (defaults only, no API keys)
  5. Hardcoded defaults

Global config must never contain API keys; use environment variables instead.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from diffscope.rag.retriever import RetrieverConfig

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".diffscope"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "diffscope.yaml"

# Fields that suggest an API key; forbidden in global config.
# Does NOT match legitimate config keys like max_tokens or max_input_chars.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"  # api_key, api-key, api_secret, apikey
    r"|_token$"                  # github_token, access_token (suffix)
    r"|^token$"                  # exactly "token"
    r"|_secret$"                 # client_secret (suffix)
    r"|^secret$"                 # exactly "secret"
    r"|passw(?:ord|d)"           # password, passwd
    r"|credential",              # credential, credentials
    re.IGNORECASE,
)

# Known top-level sections; unknown keys produce a warning
_KNOWN_SECTIONS: frozenset[str] = frozenset(["embedding", "retrieval", "store", "review"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class EmbeddingCfg:
    """Query embedding configuration (diffscope.yaml: embedding:).

    ``model`` must match the model the index was built with.
    """

    model: str = "openai/text-embedding-3-small"
    max_input_chars: int = 24_000
    num_retries: int = 3


@dataclass
class StoreCfg:
    """Chunk index location (diffscope.yaml: store:)."""

    db_path: str = ".diffscope.db"


@dataclass
class ReviewCfg:
    """LLM review configuration (diffscope.yaml: review:)."""

    model: str = "openai/gpt-4o"
    max_tokens: int = 2048


@dataclass
class DiffscopeConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    retrieval: RetrieverConfig = field(default_factory=RetrieverConfig)
    store: StoreCfg = field(default_factory=StoreCfg)
    review: ReviewCfg = field(default_factory=ReviewCfg)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  API keys must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}' — ignored.",
                UserWarning,
                stacklevel=4,
            )


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data[name] or {}
    if not isinstance(section, dict):
        raise ConfigError(
            f"'{name}' must be a mapping of settings, got {type(section).__name__}"
        )
    return section


def _positive_int(section: dict[str, Any], key: str, default: int) -> int:
    value = int(section.get(key, default))
    if value < 1:
        raise ConfigError(f"'{key}' must be >= 1, got {value}")
    return value


def _timeout(section: dict[str, Any], default: float | None) -> float | None:
    if "timeout_seconds" not in section:
        return default
    raw = section["timeout_seconds"]
    if raw is None:
        return None
    value = float(raw)
    if value <= 0:
        raise ConfigError(f"'timeout_seconds' must be > 0 or null, got {value}")
    return value


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _cfg_from_dict(data: dict[str, Any]) -> DiffscopeConfig:
    """Build a *DiffscopeConfig* from a merged raw YAML dict."""
    cfg = DiffscopeConfig()

    if "embedding" in data:
        e = _section(data, "embedding")
        cfg.embedding = EmbeddingCfg(
            model=str(e.get("model", cfg.embedding.model)),
            max_input_chars=_positive_int(e, "max_input_chars", cfg.embedding.max_input_chars),
            num_retries=int(e.get("num_retries", cfg.embedding.num_retries)),
        )

    if "retrieval" in data:
        r = _section(data, "retrieval")
        d = cfg.retrieval
        cfg.retrieval = RetrieverConfig(
            hunk_candidate_limit=_positive_int(r, "hunk_candidate_limit", d.hunk_candidate_limit),
            fallback_k=_positive_int(r, "fallback_k", d.fallback_k),
            min_hunk_matches=int(r.get("min_hunk_matches", d.min_hunk_matches)),
            max_results=_positive_int(r, "max_results", d.max_results),
            max_concurrency=_positive_int(r, "max_concurrency", d.max_concurrency),
            timeout_seconds=_timeout(r, d.timeout_seconds),
        )

    if "store" in data:
        s = _section(data, "store")
        cfg.store = StoreCfg(db_path=str(s.get("db_path", cfg.store.db_path)))

    if "review" in data:
        rv = _section(data, "review")
        cfg.review = ReviewCfg(
            model=str(rv.get("model", cfg.review.model)),
            max_tokens=_positive_int(rv, "max_tokens", cfg.review.max_tokens),
        )

    return cfg


def _apply_env_overrides(cfg: DiffscopeConfig) -> DiffscopeConfig:
    """Apply DIFFSCOPE_* environment variable overrides."""
    if model := os.environ.get("DIFFSCOPE_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if model := os.environ.get("DIFFSCOPE_REVIEW_MODEL"):
        cfg.review.model = model
    if db_path := os.environ.get("DIFFSCOPE_DB"):
        cfg.store.db_path = db_path
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> DiffscopeConfig:
    """Load and return a merged *DiffscopeConfig*.

    Applies layers in order: global → per-repository → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *diffscope.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains API-key-like fields, or a
            numeric setting is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    # Layer 1: global config
    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    # Layer 2: per-repository config
    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    try:
        cfg = _cfg_from_dict(merged)
    except ConfigError:
        raise
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    # Layer 3: env var overrides
    return _apply_env_overrides(cfg)
