# Storage and retrieval adapters package

from .base import (
    ModelStore,
    ExampleStore,
    KnowledgeGraph,
    PassageRetriever,
)
from .file_store import FileModelStore, JsonlExampleStore
from .memory import (
    InMemoryModelStore,
    InMemoryExampleStore,
    InMemoryKnowledgeGraph,
    InMemoryPassageRetriever,
)

__all__ = [
    "ModelStore",
    "ExampleStore",
    "KnowledgeGraph",
    "PassageRetriever",
    "FileModelStore",
    "JsonlExampleStore",
    "InMemoryModelStore",
    "InMemoryExampleStore",
    "InMemoryKnowledgeGraph",
    "InMemoryPassageRetriever",
]
