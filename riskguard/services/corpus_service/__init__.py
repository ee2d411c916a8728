"""Corpus Service: curated reference examples for Layer 2 retrieval.

Components:
- corpus_repository.py: CorpusItem storage (PostgreSQL or in-memory)
- lifecycle.py: draft/active/archived state machine, promotion from comments
- embedding_client.py: similarity index access and Kinesis indexing requests
"""

from .corpus_repository import CorpusItem, CorpusKind, CorpusRepository, CorpusStatus
from .embedding_client import (
    EmbeddingIndex,
    EmbeddingQueue,
    EmbeddingQueueConfig,
    IndexHit,
    PgVectorIndex,
)
from .lifecycle import ALLOWED_TRANSITIONS, CorpusService, InvalidTransitionError

__all__ = [
    "CorpusItem",
    "CorpusKind",
    "CorpusRepository",
    "CorpusStatus",
    "EmbeddingIndex",
    "EmbeddingQueue",
    "EmbeddingQueueConfig",
    "IndexHit",
    "PgVectorIndex",
    "ALLOWED_TRANSITIONS",
    "CorpusService",
    "InvalidTransitionError",
]
