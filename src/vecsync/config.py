"""vecsync configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (VECSYNC_EMBEDDING_MODEL)
  3. The YAML file passed to load_config()
  4. Hardcoded defaults

Config files must never contain credentials; tokens and API keys are read
from the environment (GITHUB_PERSONAL_ACCESS_TOKEN, OPENAI_API_KEY, ...).
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import urllib.parse
import warnings
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from vecsync.errors import VecsyncError

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Fields that suggest a credential, forbidden anywhere in the config file.
# Does NOT match legitimate keys like max_tokens or chunk_size.
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

_KNOWN_SECTIONS: frozenset[str] = frozenset(["embedding", "sources"])

_SOURCE_TYPES: frozenset[str] = frozenset(["github", "website", "local_directory"])
_DB_TYPES: frozenset[str] = frozenset(["sqlite", "qdrant"])
_PROVIDERS: frozenset[str] = frozenset(["litellm", "openai", "custom"])

_REPO_RE: re.Pattern[str] = re.compile(r"^[\w.-]+/[\w.-]+$")
_DATE_RE: re.Pattern[str] = re.compile(r"^\d{4}-\d{2}-\d{2}$")

GITHUB_TOKEN_ENV = "GITHUB_PERSONAL_ACCESS_TOKEN"

# Provider prefix → env var holding its API key (None: no key required).
_PROVIDER_ENV: dict[str, str | None] = {
    "openai": "OPENAI_API_KEY",
    "azure": "AZURE_API_KEY",
    "cohere": "COHERE_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "voyage": "VOYAGE_API_KEY",
    "bedrock": None,
    "ollama": None,
    "huggingface": None,
}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(VecsyncError, ValueError):
    """Raised when a config file contains an invalid or forbidden value."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EmbeddingCfg:
    """Embedding provider configuration (embedding: / sources[].embedding:).

    Attributes:
        provider: 'litellm' (any LiteLLM model string) or 'custom'
            (OpenAI-compatible endpoint at *endpoint*).
        model: Model identifier, e.g. 'openai/text-embedding-3-large'.
        endpoint: Base URL for the custom provider.
        dimensions: Optional output dimensionality passed to the provider.
    """

    provider: str = "litellm"
    model: str = "openai/text-embedding-3-large"
    endpoint: str | None = None
    dimensions: int | None = None
    timeout: float = 60.0


@dataclass(frozen=True)
class DatabaseCfg:
    """Storage target of a source (sources[].database_config:)."""

    type: str = "sqlite"
    db_path: str | None = None
    qdrant_url: str = "http://localhost:6333"
    qdrant_port: int | None = None
    collection_name: str | None = None
    metadata_collection: str = "vecsync_metadata"


@dataclass(frozen=True)
class SourceConfig:
    """Fields shared by every source type."""

    product_name: str = ""
    version: str = "latest"
    max_size: int = 1_048_576
    chunk_size: int = 1000
    database: DatabaseCfg = field(default_factory=DatabaseCfg)
    embedding: EmbeddingCfg | None = None

    type = "base"

    @property
    def label(self) -> str:
        return f"{self.type}:{self.product_name}@{self.version}"


@dataclass(frozen=True)
class GithubSourceConfig(SourceConfig):
    """Issues of one GitHub repository (type: github)."""

    repo: str = ""
    start_date: str = "2025-01-01"

    type = "github"


@dataclass(frozen=True)
class WebsiteSourceConfig(SourceConfig):
    """A crawled website rooted at *url* (type: website)."""

    url: str = ""
    sitemap_url: str | None = None

    type = "website"


@dataclass(frozen=True)
class LocalDirectorySourceConfig(SourceConfig):
    """A local file tree (type: local_directory)."""

    path: str = ""
    include_extensions: tuple[str, ...] = (".md", ".txt", ".html", ".htm", ".pdf", ".docx")
    exclude_extensions: tuple[str, ...] = ()
    recursive: bool = True
    encoding: str = "utf-8"
    url_rewrite_prefix: str | None = None

    type = "local_directory"


@dataclass
class VecsyncConfig:
    """Root configuration object, built by load_config()."""

    embedding: EmbeddingCfg = field(default_factory=EmbeddingCfg)
    sources: list[SourceConfig] = field(default_factory=list)

    def embedding_for(self, source: SourceConfig) -> EmbeddingCfg:
        """Per-source embedding override, else the global one."""
        return source.embedding or self.embedding


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_api_keys(data: Any, source: Path) -> None:
    """Raise ConfigError if *data* contains any API-key-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else str(k)
                if _API_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Config '{source}' contains a forbidden key '{full}'.\n"
                        f"  Credentials must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {str(k).upper().replace('-', '_')}=<value>"
                    )
                _scan(v, full)
        elif isinstance(obj, list):
            for i, item in enumerate(obj):
                _scan(item, f"{path}[{i}]")

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}': ignored.",
                UserWarning,
                stacklevel=4,
            )


def _require(raw: Mapping[str, Any], key: str, where: str) -> str:
    value = raw.get(key)
    if value is None or not str(value).strip():
        raise ConfigError(f"{where}: '{key}' is required.")
    return str(value).strip()


def _is_http_url(value: str) -> bool:
    parsed = urllib.parse.urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _normalize_extensions(values: Any, where: str) -> tuple[str, ...]:
    if isinstance(values, str) or not isinstance(values, (list, tuple)):
        raise ConfigError(f"{where}: extensions must be a list, e.g. ['.md', '.txt'].")
    return tuple(
        (v if str(v).startswith(".") else f".{v}").lower() for v in (str(x) for x in values)
    )


# ---------------------------------------------------------------------------
# Build
# ---------------------------------------------------------------------------


def _parse_embedding(raw: Any, where: str) -> EmbeddingCfg:
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: 'embedding' must be a mapping.")
    defaults = EmbeddingCfg()
    provider = str(raw.get("provider", defaults.provider)).lower()
    if provider not in _PROVIDERS:
        raise ConfigError(
            f"{where}: unknown embedding provider '{provider}'. "
            f"Use one of: {', '.join(sorted(_PROVIDERS))}."
        )
    endpoint = raw.get("endpoint")
    if provider == "custom":
        if not endpoint or not _is_http_url(str(endpoint)):
            raise ConfigError(f"{where}: the custom embedding provider needs an http(s) 'endpoint'.")
    dimensions = raw.get("dimensions")
    return EmbeddingCfg(
        provider=provider,
        model=str(raw.get("model", defaults.model)),
        endpoint=str(endpoint) if endpoint else None,
        dimensions=int(dimensions) if dimensions is not None else None,
        timeout=float(raw.get("timeout", defaults.timeout)),
    )


def _parse_database(raw: Any, where: str) -> DatabaseCfg:
    if raw is None:
        return DatabaseCfg()
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: 'database_config' must be a mapping.")
    db_type = str(raw.get("type", "sqlite")).lower()
    if db_type not in _DB_TYPES:
        raise ConfigError(
            f"{where}: unknown database type '{db_type}'. Use 'sqlite' or 'qdrant'."
        )
    params = raw.get("params") or {}
    if not isinstance(params, dict):
        raise ConfigError(f"{where}: 'database_config.params' must be a mapping.")
    defaults = DatabaseCfg()
    port = params.get("qdrant_port")
    return DatabaseCfg(
        type=db_type,
        db_path=params.get("db_path"),
        qdrant_url=str(params.get("qdrant_url", defaults.qdrant_url)),
        qdrant_port=int(port) if port is not None else None,
        collection_name=params.get("collection_name"),
        metadata_collection=str(params.get("metadata_collection", defaults.metadata_collection)),
    )


def _parse_source(raw: Any, index: int, base_dir: Path) -> SourceConfig:
    where = f"sources[{index}]"
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: each source must be a mapping.")
    source_type = str(raw.get("type", "")).lower()
    if source_type not in _SOURCE_TYPES:
        raise ConfigError(
            f"{where}: unknown source type '{source_type}'. "
            f"Use one of: {', '.join(sorted(_SOURCE_TYPES))}."
        )

    common: dict[str, Any] = {
        "version": str(raw.get("version", "latest")),
        "max_size": int(raw.get("max_size", SourceConfig.max_size)),
        "chunk_size": int(raw.get("chunk_size", SourceConfig.chunk_size)),
        "database": _parse_database(raw.get("database_config"), where),
    }
    if common["max_size"] < 1:
        raise ConfigError(f"{where}: 'max_size' must be a positive number of bytes.")
    if common["chunk_size"] < 1:
        raise ConfigError(f"{where}: 'chunk_size' must be >= 1.")
    if raw.get("embedding") is not None:
        common["embedding"] = _parse_embedding(raw["embedding"], where)

    if source_type == "github":
        repo = _require(raw, "repo", where)
        if not _REPO_RE.match(repo):
            raise ConfigError(f"{where}: 'repo' must look like 'owner/name', got '{repo}'.")
        start_date = str(raw.get("start_date", GithubSourceConfig.start_date))
        if not _DATE_RE.match(start_date):
            raise ConfigError(f"{where}: 'start_date' must be YYYY-MM-DD, got '{start_date}'.")
        return GithubSourceConfig(
            product_name=str(raw.get("product_name") or repo),
            repo=repo,
            start_date=start_date,
            **common,
        )

    product_name = _require(raw, "product_name", where)

    if source_type == "website":
        url = _require(raw, "url", where)
        if not _is_http_url(url):
            raise ConfigError(f"{where}: 'url' must be an http(s) URL, got '{url}'.")
        sitemap_url = raw.get("sitemap_url")
        if sitemap_url and not _is_http_url(str(sitemap_url)):
            raise ConfigError(f"{where}: 'sitemap_url' must be an http(s) URL.")
        return WebsiteSourceConfig(
            product_name=product_name,
            url=url,
            sitemap_url=str(sitemap_url) if sitemap_url else None,
            **common,
        )

    path = Path(_require(raw, "path", where)).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    if not path.is_dir():
        raise ConfigError(f"{where}: directory '{path}' does not exist.")
    defaults = LocalDirectorySourceConfig()
    rewrite = raw.get("url_rewrite_prefix")
    return LocalDirectorySourceConfig(
        product_name=product_name,
        path=str(path),
        include_extensions=_normalize_extensions(
            raw.get("include_extensions", list(defaults.include_extensions)), where
        ),
        exclude_extensions=_normalize_extensions(raw.get("exclude_extensions", []), where),
        recursive=bool(raw.get("recursive", True)),
        encoding=str(raw.get("encoding", defaults.encoding)),
        url_rewrite_prefix=str(rewrite) if rewrite else None,
        **common,
    )


def storage_target(source: SourceConfig) -> tuple[str, str]:
    """Identity of the store a source writes to: (db type, file or collection)."""
    from vecsync.storage.factory import default_collection_name, default_db_path

    db = source.database
    if db.type == "qdrant":
        return db.type, db.collection_name or default_collection_name(
            source.product_name, source.version
        )
    return db.type, str(Path(db.db_path or default_db_path(source.product_name)).resolve())


def _cleanup_prefix(source: SourceConfig) -> str | None:
    """URL prefix a source's cleanup owns; None for sources that never clean up."""
    if isinstance(source, WebsiteSourceConfig):
        return _url_prefix(source.url)
    if isinstance(source, LocalDirectorySourceConfig):
        if source.url_rewrite_prefix:
            return f"{source.url_rewrite_prefix.rstrip('/')}/"
        return f"{Path(source.path).expanduser().resolve().as_uri()}/"
    return None


def _check_overlapping_scopes(sources: list[SourceConfig]) -> None:
    """Reject sources whose cleanup prefixes overlap on one storage target.

    Each source's cleanup would otherwise delete the other source's chunks.
    """
    seen: list[tuple[tuple[str, str], str]] = []
    for source in sources:
        prefix = _cleanup_prefix(source)
        if prefix is None:
            continue
        target = storage_target(source)
        for other_target, other_prefix in seen:
            if other_target == target and (
                prefix.startswith(other_prefix) or other_prefix.startswith(prefix)
            ):
                raise ConfigError(
                    f"Sources '{other_prefix}' and '{prefix}' overlap and write "
                    f"to the same {target[0]} target '{target[1]}'.\n"
                    "  Give one of them its own database_config, or narrow its url or "
                    "url_rewrite_prefix."
                )
        seen.append((target, prefix))



def _url_prefix(url: str) -> str:
    parsed = urllib.parse.urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}"


def _cfg_from_dict(data: dict[str, Any], base_dir: Path) -> VecsyncConfig:
    """Build a *VecsyncConfig* from a raw YAML dict."""
    cfg = VecsyncConfig()

    if "embedding" in data:
        cfg.embedding = _parse_embedding(data["embedding"], "embedding")

    raw_sources = data.get("sources")
    if not isinstance(raw_sources, list) or not raw_sources:
        raise ConfigError("'sources' must be a non-empty list of source definitions.")
    cfg.sources = [_parse_source(raw, i, base_dir) for i, raw in enumerate(raw_sources)]

    _check_overlapping_scopes(cfg.sources)
    return cfg


def _apply_env_overrides(cfg: VecsyncConfig) -> VecsyncConfig:
    """Apply VECSYNC_* environment variable overrides."""
    if model := os.environ.get("VECSYNC_EMBEDDING_MODEL"):
        cfg.embedding = replace(cfg.embedding, model=model)
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(path: Path | str) -> VecsyncConfig:
    """Load, validate and return the configuration at *path*.

    Relative local_directory paths resolve against the config file's directory.

    Raises:
        ConfigError: If the file is missing, malformed, contains credentials,
            or describes an invalid source.
    """
    config_path = Path(path)
    if not config_path.is_file():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config '{config_path}' is not valid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config '{config_path}' must be a mapping at the top level.")

    _check_no_api_keys(data, config_path)
    _warn_unknown_keys(data, config_path)

    cfg = _cfg_from_dict(data, config_path.parent)
    return _apply_env_overrides(cfg)


def check_credentials(cfg: VecsyncConfig, environ: Mapping[str, str] | None = None) -> None:
    """Fail fast when a credential needed by *cfg* is missing from the environment.

    Raises:
        ConfigError: Listing every missing variable.
    """
    env = os.environ if environ is None else environ
    missing: list[str] = []

    if any(isinstance(s, GithubSourceConfig) for s in cfg.sources) and not env.get(GITHUB_TOKEN_ENV):
        missing.append(GITHUB_TOKEN_ENV)

    for source in cfg.sources:
        embedding = cfg.embedding_for(source)
        if embedding.provider == "custom":
            continue
        provider = embedding.model.split("/")[0].lower() if "/" in embedding.model else "openai"
        env_var = _PROVIDER_ENV.get(provider, f"{provider.upper()}_API_KEY")
        if env_var and not env.get(env_var) and env_var not in missing:
            missing.append(env_var)

    if missing:
        raise ConfigError(
            "Missing credentials: "
            + ", ".join(missing)
            + ".\n  Set them in the environment, e.g.  export "
            + f"{missing[0]}=<value>"
        )
