"""Embedding index access for corpus items.

Two directions:
- EmbeddingIndex answers similarity queries for Layer 2 retrieval.
- EmbeddingQueue asks the indexing worker to (re)embed an item. It
  publishes to Kinesis and never blocks the caller; a failed enqueue
  is logged and the item simply stays unindexed until the next one.
"""
import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

import boto3
import openai

from riskguard.shared.database import ConnectionManager

logger = logging.getLogger(__name__)


# Target types the indexing worker embeds for the safety corpus
CORPUS_TARGET_TYPES = ("safety_slang", "safety_case")


@dataclass(frozen=True)
class IndexHit:
    """One similarity result, best first."""
    target_type: str
    target_id: str
    score: float


class EmbeddingIndex(ABC):
    """Similarity search over embedded corpus items."""

    @abstractmethod
    def query(self, text: str, top_k: int) -> List[IndexHit]:
        """Return up to ``top_k`` hits ordered by descending score.

        Raises:
            Exception: Any backend failure; callers decide how to degrade
        """
        pass


class PgVectorIndex(EmbeddingIndex):
    """pgvector-backed index over the shared ``embeddings`` table."""

    def __init__(
        self,
        connection_manager: ConnectionManager,
        model: str = "text-embedding-3-small",
        target_types: Sequence[str] = CORPUS_TARGET_TYPES,
        client=None,
    ):
        self.connection_manager = connection_manager
        self.model = model
        self.target_types = list(target_types)
        self._client = client

    @property
    def client(self) -> "openai.OpenAI":
        """Lazy-initialized OpenAI client for query embeddings."""
        if self._client is None:
            self._client = openai.OpenAI(
                api_key=os.getenv("OPENAI_API_KEY"),
                base_url=os.getenv("OPENAI_BASE_URL") or None,
            )
        return self._client

    def embed(self, text: str) -> List[float]:
        response = self.client.embeddings.create(model=self.model, input=text)
        return list(response.data[0].embedding)

    def query(self, text: str, top_k: int) -> List[IndexHit]:
        vector = "[" + ",".join(repr(v) for v in self.embed(text)) + "]"

        with self.connection_manager.transaction() as cur:
            cur.execute(
                """
                SELECT target_type, target_id, 1 - (embedding <=> %s::vector) AS score
                FROM embeddings
                WHERE target_type = ANY(%s)
                ORDER BY embedding <=> %s::vector
                LIMIT %s
                """,
                (vector, self.target_types, vector, top_k)
            )
            rows = cur.fetchall()

        return [
            IndexHit(
                target_type=row["target_type"],
                target_id=str(row["target_id"]),
                score=float(row["score"]),
            )
            for row in rows
        ]


@dataclass(frozen=True)
class EmbeddingQueueConfig:
    """Where indexing requests are published."""
    stream_name: str = "riskguard-embedding-requests"
    enabled: bool = True
    region: str = "us-east-1"

    @classmethod
    def from_env(cls) -> "EmbeddingQueueConfig":
        """Create config from environment variables.

        Environment variables:
            EMBEDDING_STREAM_NAME: Kinesis stream name
            EMBEDDING_QUEUE_ENABLED: "false" to disable (local dev)
            AWS_REGION: AWS region (default us-east-1)
        """
        return cls(
            stream_name=os.getenv("EMBEDDING_STREAM_NAME", "riskguard-embedding-requests"),
            enabled=os.getenv("EMBEDDING_QUEUE_ENABLED", "true").lower() != "false",
            region=os.getenv("AWS_REGION", "us-east-1"),
        )


class EmbeddingQueue:
    """Publishes indexing requests to a Kinesis stream.

    Failure Handling:
        - enqueue() never raises
        - Failures are logged at WARNING; the caller's state change stands
    """

    def __init__(self, config: Optional[EmbeddingQueueConfig] = None):
        """Initialize queue publisher.

        Args:
            config: Stream configuration (defaults from environment)
        """
        self.config = config or EmbeddingQueueConfig.from_env()
        self._kinesis_client = None

        logger.info(
            "EMBEDDING_QUEUE_INITIALIZED",
            extra={
                "stream_name": self.config.stream_name,
                "enabled": self.config.enabled,
                "region": self.config.region,
            }
        )

    @property
    def kinesis_client(self):
        """Lazy initialization of Kinesis client."""
        if self._kinesis_client is None and self.config.enabled:
            self._kinesis_client = boto3.client(
                "kinesis",
                region_name=self.config.region,
            )
        return self._kinesis_client

    def enqueue(self, target_type: str, target_id: str, priority: str = "normal") -> bool:
        """Request (re)embedding of one item.

        Args:
            target_type: Indexer target type, e.g. "safety_slang"
            target_id: Item identifier
            priority: Indexer priority hint

        Returns:
            True if the request was published, False otherwise
        """
        if not self.config.enabled:
            logger.info(
                "EMBEDDING_ENQUEUE_SKIPPED",
                extra={
                    "target_type": target_type,
                    "target_id": target_id,
                    "reason": "queue_disabled",
                }
            )
            return False

        payload = {
            "request_id": f"emb_{uuid.uuid4().hex[:12]}",
            "event_type": "embedding.requested",
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "data": {
                "target_type": target_type,
                "target_id": target_id,
                "priority": priority,
            },
        }

        try:
            response = self.kinesis_client.put_record(
                StreamName=self.config.stream_name,
                Data=json.dumps(payload),
                PartitionKey=target_id,
            )
        except Exception as e:
            logger.warning(
                "EMBEDDING_ENQUEUE_FAILED",
                extra={
                    "target_type": target_type,
                    "target_id": target_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return False

        logger.info(
            "EMBEDDING_ENQUEUED",
            extra={
                "request_id": payload["request_id"],
                "target_type": target_type,
                "target_id": target_id,
                "priority": priority,
                "sequence_number": response.get("SequenceNumber"),
            }
        )
        return True
