"""Reference storage backends for the notelens search engine."""

from notelens.storage.json_store import JsonSnapshotStore
from notelens.storage.vector_index import InMemoryVectorIndex

__all__ = [
    "InMemoryVectorIndex",
    "JsonSnapshotStore",
]
