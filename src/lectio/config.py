"""Lectio configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (LECTIO_GENERATION_MODEL, LECTIO_EMBEDDING_MODEL,
                             LECTIO_DB_PATH, LECTIO_ENVIRONMENT)
  3. Per-project lectio.yaml  (current working directory)
  4. Global ~/.lectio/config.yaml  (no secrets)
  5. Hardcoded defaults

Secrets never live in config files: provider API keys are read by litellm from
its own environment variables and the admin secret from LECTIO_ADMIN_SECRET.
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

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".lectio"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "lectio.yaml"

ADMIN_SECRET_ENV: str = "LECTIO_ADMIN_SECRET"

# Key names that look like credentials, forbidden in global config.
# Does NOT match legitimate keys like max_tokens or max_chunk_tokens.
_API_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(
    ["embedding", "generation", "retrieval", "ingest", "server"]
)


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
    """Embedding model configuration (lectio.yaml: embedding:)."""

    model: str = "openai/text-embedding-3-small"
    dimensions: int = 1536


@dataclass
class GenerationCfg:
    """Chat generation configuration (lectio.yaml: generation:)."""

    model: str = "openai/gpt-4o-mini"
    max_tokens: int = 2048
    followup_model: str | None = None  # falls back to model
    followup_max_tokens: int = 200


@dataclass
class RetrievalCfg:
    """Retrieval and prompt assembly configuration (lectio.yaml: retrieval:)."""

    top_k: int = 5
    history_limit: int = 10
    snippet_chars: int = 300


@dataclass
class IngestCfg:
    """Commentary crawler configuration (lectio.yaml: ingest:).

    Attributes:
        base_url: Commentary site root; chapter pages live at
            ``<base_url>/<book-slug>-<chapter>-commentary``.
        delay_seconds: Politeness pause after every HTTP exchange.
        max_chunk_tokens: Token budget per chunk (estimated at 4 chars/token).
        snippet_chars: Fair-use bound on extracted text per page.
        min_chars: Pages with less extracted text are rejected.
        timeout: HTTP timeout in seconds.
    """

    base_url: str = "https://www.preceptaustin.org"
    delay_seconds: float = 1.0
    max_chunk_tokens: int = 500
    snippet_chars: int = 5000
    min_chars: int = 100
    timeout: int = 30


@dataclass
class ServerCfg:
    """HTTP server configuration (lectio.yaml: server:)."""

    db_path: str = ".lectio.db"
    environment: str = "production"
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class LectioConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    generation: GenerationCfg = field(default_factory=GenerationCfg)
    retrieval: RetrievalCfg = field(default_factory=RetrievalCfg)
    ingest: IngestCfg = field(default_factory=IngestCfg)
    server: ServerCfg = field(default_factory=ServerCfg)

    @property
    def followup_model(self) -> str:
        return self.generation.followup_model or self.generation.model

    @property
    def is_development(self) -> bool:
        return self.server.environment == "development"


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
                        f"Config '{source}' contains a forbidden key '{full}'.\n"
                        f"  Secrets must be set via environment variables, not config files.\n"
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
                f"Unknown config key '{key}' in '{source}'; ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: LectioConfig) -> None:
    if cfg.embedding.dimensions < 1:
        raise ConfigError(f"embedding.dimensions must be >= 1, got {cfg.embedding.dimensions}")
    if cfg.retrieval.top_k < 1:
        raise ConfigError(f"retrieval.top_k must be >= 1, got {cfg.retrieval.top_k}")
    if cfg.ingest.delay_seconds < 0:
        raise ConfigError(f"ingest.delay_seconds must be >= 0, got {cfg.ingest.delay_seconds}")
    if not cfg.ingest.base_url.startswith(("http://", "https://")):
        raise ConfigError(f"ingest.base_url must be an http(s) URL: '{cfg.ingest.base_url}'")


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


def _cfg_from_dict(data: dict[str, Any]) -> LectioConfig:
    """Build a *LectioConfig* from a merged raw YAML dict."""
    cfg = LectioConfig()

    try:
        if "embedding" in data:
            e = data["embedding"] or {}
            cfg.embedding = EmbeddingCfg(
                model=str(e.get("model", cfg.embedding.model)),
                dimensions=int(e.get("dimensions", cfg.embedding.dimensions)),
            )

        if "generation" in data:
            g = data["generation"] or {}
            cfg.generation = GenerationCfg(
                model=str(g.get("model", cfg.generation.model)),
                max_tokens=int(g.get("max_tokens", cfg.generation.max_tokens)),
                followup_model=g.get("followup_model") or cfg.generation.followup_model,
                followup_max_tokens=int(
                    g.get("followup_max_tokens", cfg.generation.followup_max_tokens)
                ),
            )

        if "retrieval" in data:
            r = data["retrieval"] or {}
            cfg.retrieval = RetrievalCfg(
                top_k=int(r.get("top_k", cfg.retrieval.top_k)),
                history_limit=int(r.get("history_limit", cfg.retrieval.history_limit)),
                snippet_chars=int(r.get("snippet_chars", cfg.retrieval.snippet_chars)),
            )

        if "ingest" in data:
            i = data["ingest"] or {}
            cfg.ingest = IngestCfg(
                base_url=str(i.get("base_url", cfg.ingest.base_url)).rstrip("/"),
                delay_seconds=float(i.get("delay_seconds", cfg.ingest.delay_seconds)),
                max_chunk_tokens=int(i.get("max_chunk_tokens", cfg.ingest.max_chunk_tokens)),
                snippet_chars=int(i.get("snippet_chars", cfg.ingest.snippet_chars)),
                min_chars=int(i.get("min_chars", cfg.ingest.min_chars)),
                timeout=int(i.get("timeout", cfg.ingest.timeout)),
            )

        if "server" in data:
            s = data["server"] or {}
            cfg.server = ServerCfg(
                db_path=str(s.get("db_path", cfg.server.db_path)),
                environment=str(s.get("environment", cfg.server.environment)),
                host=str(s.get("host", cfg.server.host)),
                port=int(s.get("port", cfg.server.port)),
            )
    except (TypeError, ValueError, AttributeError) as exc:
        raise ConfigError(f"Invalid config value: {exc}") from exc

    return cfg


def _apply_env_overrides(cfg: LectioConfig) -> LectioConfig:
    """Apply LECTIO_* environment variable overrides (layer 2)."""
    if model := os.environ.get("LECTIO_GENERATION_MODEL"):
        cfg.generation.model = model
    if model := os.environ.get("LECTIO_EMBEDDING_MODEL"):
        cfg.embedding.model = model
    if db_path := os.environ.get("LECTIO_DB_PATH"):
        cfg.server.db_path = db_path
    if environment := os.environ.get("LECTIO_ENVIRONMENT"):
        cfg.server.environment = environment
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> LectioConfig:
    """Load and return a merged *LectioConfig*.

    Applies layers in order: global → per-project → env vars.

    Args:
        project_dir: Directory to search for *lectio.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Returns:
        Fully merged *LectioConfig* with env var overrides applied.

    Raises:
        ConfigError: If any config file contains secret-like keys or values
            of the wrong type.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _check_no_api_keys(raw_project, project_cfg_path)
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg


def admin_secret() -> str | None:
    """Return the configured admin secret, or None when unset/empty."""
    return os.environ.get(ADMIN_SECRET_ENV) or None
