"""Backend selection: once per source at ingestion, once per request at query time."""

from __future__ import annotations

import re
from pathlib import Path

from vecsync.config import ConfigError, DatabaseCfg, SourceConfig
from vecsync.storage.base import StorageBackend
from vecsync.storage.qdrant import QdrantBackend
from vecsync.storage.sqlite import SqliteBackend


def normalize_name(name: str) -> str:
    """Lower-case *name* and collapse whitespace to underscores."""
    return re.sub(r"\s+", "_", name.strip().lower())


def default_db_path(product_name: str) -> Path:
    """One SQLite file per product, in the working directory."""
    return Path(f"{normalize_name(product_name).replace('/', '_')}.db")


def default_collection_name(product_name: str, version: str | None = None) -> str:
    """One Qdrant collection per (product, version)."""
    name = normalize_name(product_name).replace("/", "_")
    return f"{name}_{version}" if version else name


def create_backend(source: SourceConfig, embedding_model: str) -> StorageBackend:
    """Build the backend a source writes to, migrating SQLite files as needed."""
    db = source.database
    if db.type == "qdrant":
        return QdrantBackend(
            db.collection_name or default_collection_name(source.product_name, source.version),
            url=db.qdrant_url,
            port=db.qdrant_port,
            metadata_collection=db.metadata_collection,
        )
    return SqliteBackend(db.db_path or default_db_path(source.product_name), embedding_model)


def resolve_storage_target(
    database: DatabaseCfg,
    *,
    embedding_model: str,
    name: str | None = None,
    product: str | None = None,
    version: str | None = None,
    repo: str | None = None,
    base_dir: Path | None = None,
) -> StorageBackend:
    """Resolve the store a query should read from.

    An explicit *name* (file name or collection) wins; otherwise the target is
    derived from *product*, or from *repo* when no product is given.

    Raises:
        ConfigError: Neither a name nor a product/repo was given.
        StorageError: The SQLite file does not exist.
    """
    product = product or repo
    if not name and not product:
        raise ConfigError("Either a product (or repo) or an explicit database name is required.")

    if database.type == "qdrant":
        collection = name or default_collection_name(product, version)
        return QdrantBackend(
            collection,
            url=database.qdrant_url,
            port=database.qdrant_port,
            metadata_collection=database.metadata_collection,
        )

    path = Path(name) if name else Path(database.db_path or default_db_path(product))
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return SqliteBackend.open_existing(path, embedding_model)
