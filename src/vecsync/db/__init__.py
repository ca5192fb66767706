"""vecsync embedded database layer."""

from vecsync.db.connection import Database
from vecsync.db.migrations import MIGRATIONS, run_migrations
from vecsync.db.models import DocumentChunk, QueryFilters, StoredChunk
from vecsync.db.vectors import ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "DocumentChunk",
    "MIGRATIONS",
    "QueryFilters",
    "StoredChunk",
    "ensure_vec_table",
    "model_to_slug",
    "run_migrations",
    "vec_table_name",
]
