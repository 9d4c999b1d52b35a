"""
Component Graph Store: contract plus in-memory and SQLAlchemy backends.
"""

from funcengine.store.base import (
    AttributeReader,
    ChangeSet,
    ChangeSetStatus,
    GraphStore,
    WriteReceipt,
)
from funcengine.store.memory import InMemoryGraphStore
from funcengine.store.sql import SqlGraphStore

__all__ = [
    "AttributeReader",
    "ChangeSet",
    "ChangeSetStatus",
    "GraphStore",
    "WriteReceipt",
    "InMemoryGraphStore",
    "SqlGraphStore",
]
