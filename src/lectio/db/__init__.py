"""Lectio database layer."""

from lectio.db.connection import Database
from lectio.db.migrations import MIGRATIONS, run_migrations
from lectio.db.repository import Repository
from lectio.db.schema import initialize
from lectio.db.vectors import VectorIndex, ensure_vec_table, model_to_slug, vec_table_name

__all__ = [
    "Database",
    "Repository",
    "VectorIndex",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "ensure_vec_table",
    "model_to_slug",
    "vec_table_name",
]
