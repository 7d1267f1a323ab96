"""SQLAlchemy ORM models — one file per table."""

from costar.models.kv_entry import KVEntry

__all__ = [
    "KVEntry",
]
