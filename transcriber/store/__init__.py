from transcriber.store.base import TaskStore
from transcriber.store.memory import InMemoryStore
from transcriber.store.records import (
    SegmentRecord,
    SegmentStatus,
    TaskRecord,
    TaskStatus,
)
from transcriber.store.sql import SqlAlchemyStore

__all__ = [
    "TaskStore",
    "InMemoryStore",
    "SqlAlchemyStore",
    "TaskRecord",
    "SegmentRecord",
    "TaskStatus",
    "SegmentStatus",
]
