"""Embedded file-store backend: one SQLite file per product with sqlite-vec.

Chunk text and metadata live in the regular ``chunks`` table; vectors live
in a per-model ``vec_chunks_{slug}`` vec0 table whose rowid equals
``chunks.id``. Files written by older releases may lack the chunk_index /
total_chunks columns; reads introspect the schema and degrade gracefully.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from vecsync.db.connection import Database
from vecsync.db.migrations import run_migrations, table_columns
from vecsync.db.models import DocumentChunk, QueryFilters, StoredChunk
from vecsync.db.vectors import (
    METADATA_COLUMNS,
    ensure_vec_table,
    list_vec_tables,
    model_to_slug,
    vec_table_exists,
    vec_table_name,
)
from vecsync.errors import StorageError
from vecsync.storage.base import CleanupScope, StorageBackend, checkpoint_record_key

logger = logging.getLogger(__name__)

# Columns read into StoredChunk; optional ones are skipped when absent.
_BASE_COLUMNS = ("id", "chunk_id", "content", "url", "section", "heading_hierarchy",
                 "product_name", "version", "hash")
_OPTIONAL_COLUMNS = ("branch", "repo", "chunk_index", "total_chunks")


class SqliteBackend(StorageBackend):
    """StorageBackend over a single SQLite file.

    Args:
        db_path: Path of the database file.
        embedding_model: Model string; selects the vec table the vectors go to.
        migrate: Apply pending migrations on construction. Query-only callers
            pass False so a legacy file is read as-is.
    """

    def __init__(self, db_path: Path | str, embedding_model: str, *, migrate: bool = True) -> None:
        self._db = Database(db_path)
        self._slug = model_to_slug(embedding_model)
        self._vec_table = vec_table_name(self._slug)
        if migrate:
            with self._session() as conn:
                run_migrations(conn)

    @classmethod
    def open_existing(cls, db_path: Path | str, embedding_model: str) -> SqliteBackend:
        """Open a file for querying; raise StorageError if it does not exist."""
        if not Path(db_path).is_file():
            raise StorageError(f"Database file not found: {db_path}")
        return cls(db_path, embedding_model, migrate=False)

    @property
    def db_path(self) -> Path:
        return self._db.db_path

    @contextmanager
    def _session(self) -> Iterator[sqlite3.Connection]:
        try:
            with self._db.session() as conn:
                yield conn
        except sqlite3.Error as exc:
            raise StorageError(f"SQLite operation failed on {self._db.db_path}: {exc}") from exc

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def lookup_hash(self, chunk_id: str) -> str | None:
        with self._session() as conn:
            row = conn.execute(
                "SELECT hash FROM chunks WHERE chunk_id = ?", (chunk_id,)
            ).fetchone()
        return row["hash"] if row else None

    def upsert(self, chunk: DocumentChunk, embedding: list[float], content_hash: str) -> None:
        """Insert or update *chunk* and its vector in one transaction."""
        columns = {
            "chunk_id": chunk.chunk_id,
            "product_name": chunk.product_name or "",
            "version": chunk.version or "",
            "branch": chunk.branch or "",
            "repo": chunk.repo or "",
            "heading_hierarchy": json.dumps(chunk.heading_hierarchy),
            "section": chunk.section,
            "content": chunk.content,
            "url": chunk.url,
            "hash": content_hash,
            "chunk_index": chunk.chunk_index,
            "total_chunks": chunk.total_chunks,
        }
        with self._session() as conn:
            table = ensure_vec_table(conn, self._slug, len(embedding))
            existing = conn.execute(
                "SELECT id FROM chunks WHERE chunk_id = ?", (chunk.chunk_id,)
            ).fetchone()
            if existing is None:
                names = ", ".join(columns)
                marks = ", ".join("?" for _ in columns)
                cur = conn.execute(
                    f"INSERT INTO chunks ({names}) VALUES ({marks})", tuple(columns.values())
                )
                rowid = cur.lastrowid
            else:
                rowid = existing["id"]
                assignments = ", ".join(f"{name} = ?" for name in columns)
                conn.execute(
                    f"UPDATE chunks SET {assignments} WHERE id = ?",
                    (*columns.values(), rowid),
                )
                conn.execute(f"DELETE FROM {table} WHERE rowid = ?", (rowid,))

            meta_names = ", ".join(METADATA_COLUMNS)
            meta_marks = ", ".join("?" for _ in METADATA_COLUMNS)
            conn.execute(
                f"INSERT INTO {table}(rowid, embedding, {meta_names}) "
                f"VALUES (?, ?, {meta_marks})",
                (rowid, json.dumps(embedding), *(columns[c] for c in METADATA_COLUMNS)),
            )

    def get_chunks_for_document(
        self,
        url: str,
        filters: QueryFilters | None = None,
        start: int | None = None,
        end: int | None = None,
    ) -> list[StoredChunk]:
        with self._session() as conn:
            present = table_columns(conn, "chunks")
            if not present:
                return []
            has_index = "chunk_index" in present

            sql = f"SELECT {_select_list(present)} FROM chunks WHERE url = ?"
            params: list[object] = [url]
            for column, value in (filters or QueryFilters()).items():
                if column not in present:
                    logger.warning("Column '%s' missing in %s; filter ignored", column, self.db_path)
                    continue
                sql += f" AND {column} = ?"
                params.append(value)

            if has_index:
                if start is not None:
                    sql += " AND chunk_index >= ?"
                    params.append(start)
                if end is not None:
                    sql += " AND chunk_index <= ?"
                    params.append(end)
                sql += " ORDER BY chunk_index"
            else:
                if start is not None or end is not None:
                    logger.warning(
                        "chunk_index column missing in %s (older schema); "
                        "range filter ignored, returning all chunks of %s",
                        self.db_path,
                        url,
                    )
                sql += " ORDER BY id"

            rows = conn.execute(sql, params).fetchall()
        return [_row_to_stored_chunk(row) for row in rows]

    def remove_obsolete(self, scope: CleanupScope, keep: set[str]) -> int:
        """Delete every in-scope chunk whose id is not in *keep*."""
        with self._session() as conn:
            if not table_columns(conn, "chunks"):
                return 0
            rows = conn.execute("SELECT id, chunk_id, url FROM chunks").fetchall()
            doomed = [
                row["id"]
                for row in rows
                if scope.matches(row["url"]) and row["chunk_id"] not in keep
            ]
            if not doomed:
                return 0

            vec_tables = list_vec_tables(conn)
            for rowid in doomed:
                for table in vec_tables:
                    conn.execute(f"DELETE FROM {table} WHERE rowid = ?", (rowid,))
                conn.execute("DELETE FROM chunks WHERE id = ?", (rowid,))

        logger.info("Removed %d obsolete chunks from %s", len(doomed), self.db_path)
        return len(doomed)

    # ------------------------------------------------------------------
    # Vector search
    # ------------------------------------------------------------------

    def query(
        self, vector: list[float], filters: QueryFilters | None = None, top_k: int = 10
    ) -> list[tuple[StoredChunk, float]]:
        """KNN search with metadata equality filters applied inside the scan."""
        with self._session() as conn:
            if not vec_table_exists(conn, self._vec_table):
                return []

            sql = f"SELECT rowid, distance FROM {self._vec_table} WHERE embedding MATCH ? AND k = ?"
            params: list[object] = [json.dumps(vector), top_k]
            for column, value in (filters or QueryFilters()).items():
                sql += f" AND {column} = ?"
                params.append(value)
            sql += " ORDER BY distance"
            hits = conn.execute(sql, params).fetchall()
            if not hits:
                return []

            present = table_columns(conn, "chunks")
            marks = ", ".join("?" for _ in hits)
            rows = conn.execute(
                f"SELECT {_select_list(present)} FROM chunks WHERE id IN ({marks})",
                [hit["rowid"] for hit in hits],
            ).fetchall()

        by_id = {row["id"]: _row_to_stored_chunk(row) for row in rows}
        return [
            (by_id[hit["rowid"]], hit["distance"])
            for hit in hits
            if hit["rowid"] in by_id
        ]

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    def get_checkpoint(self, source_key: str) -> str | None:
        with self._session() as conn:
            if not table_columns(conn, "vec_metadata"):
                return None
            row = conn.execute(
                "SELECT value FROM vec_metadata WHERE key = ?",
                (checkpoint_record_key(source_key),),
            ).fetchone()
        return row["value"] if row else None

    def set_checkpoint(self, source_key: str, value: str) -> None:
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO vec_metadata (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               updated_at = datetime('now')
                """,
                (checkpoint_record_key(source_key), value),
            )


# ------------------------------------------------------------------
# Row mapping
# ------------------------------------------------------------------


def _select_list(present: set[str]) -> str:
    return ", ".join(c for c in (*_BASE_COLUMNS, *_OPTIONAL_COLUMNS) if c in present)


def _row_to_stored_chunk(row: sqlite3.Row) -> StoredChunk:
    keys = set(row.keys())

    def _opt(name: str):
        return row[name] if name in keys else None

    return StoredChunk(
        chunk_id=row["chunk_id"],
        content=row["content"],
        url=row["url"],
        section=row["section"],
        heading_hierarchy=json.loads(row["heading_hierarchy"] or "[]"),
        chunk_index=_opt("chunk_index"),
        total_chunks=_opt("total_chunks"),
        product_name=row["product_name"] or None,
        version=row["version"] or None,
        branch=_opt("branch") or None,
        repo=_opt("repo") or None,
        content_hash=row["hash"],
    )
