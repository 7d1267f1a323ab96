"""Persistent ordered key-value store for the stargazer graph."""

from costar.store.graph import KEYSPACES, GraphStore
from costar.store.keyspace import Keyspace, WriteBatch

__all__ = [
    "KEYSPACES",
    "GraphStore",
    "Keyspace",
    "WriteBatch",
]
