"""Tests for embedding index access and the indexing queue."""
import json

import pytest
from unittest.mock import patch, MagicMock

from riskguard.services.corpus_service.embedding_client import (
    EmbeddingQueue,
    EmbeddingQueueConfig,
    PgVectorIndex,
)


class TestEmbeddingQueue:
    """Tests for EmbeddingQueue.enqueue()."""

    @pytest.fixture
    def mock_kinesis(self):
        with patch("riskguard.services.corpus_service.embedding_client.boto3") as mock_boto3:
            client = MagicMock()
            client.put_record.return_value = {"SequenceNumber": "123", "ShardId": "shard-0"}
            mock_boto3.client.return_value = client
            yield mock_boto3, client

    def test_publishes_request(self, mock_kinesis):
        mock_boto3, client = mock_kinesis
        queue = EmbeddingQueue(EmbeddingQueueConfig(stream_name="test-stream", region="eu-west-1"))

        assert queue.enqueue("safety_slang", "item-1", priority="high") is True

        mock_boto3.client.assert_called_once_with("kinesis", region_name="eu-west-1")
        kwargs = client.put_record.call_args.kwargs
        assert kwargs["StreamName"] == "test-stream"
        assert kwargs["PartitionKey"] == "item-1"
        payload = json.loads(kwargs["Data"])
        assert payload["event_type"] == "embedding.requested"
        assert payload["data"] == {
            "target_type": "safety_slang",
            "target_id": "item-1",
            "priority": "high",
        }

    def test_failure_returns_false(self, mock_kinesis):
        _, client = mock_kinesis
        client.put_record.side_effect = Exception("stream unavailable")

        queue = EmbeddingQueue(EmbeddingQueueConfig())

        assert queue.enqueue("safety_case", "item-1") is False

    def test_disabled_skips_kinesis(self, mock_kinesis):
        mock_boto3, _ = mock_kinesis
        queue = EmbeddingQueue(EmbeddingQueueConfig(enabled=False))

        assert queue.enqueue("safety_slang", "item-1") is False
        mock_boto3.client.assert_not_called()

    def test_config_from_env(self):
        env = {
            "EMBEDDING_STREAM_NAME": "custom-stream",
            "EMBEDDING_QUEUE_ENABLED": "false",
            "AWS_REGION": "us-west-2",
        }
        with patch.dict("os.environ", env):
            config = EmbeddingQueueConfig.from_env()

        assert config.stream_name == "custom-stream"
        assert config.enabled is False
        assert config.region == "us-west-2"


class TestPgVectorIndex:
    """Tests for PgVectorIndex.query()."""

    def test_query_maps_rows(self):
        client = MagicMock()
        client.embeddings.create.return_value.data = [MagicMock(embedding=[0.1, 0.2])]
        cursor = MagicMock()
        cursor.fetchall.return_value = [
            {"target_type": "safety_slang", "target_id": "a", "score": 0.91},
            {"target_type": "safety_case", "target_id": "b", "score": 0.5},
        ]
        manager = MagicMock()
        manager.transaction.return_value.__enter__.return_value = cursor

        hits = PgVectorIndex(manager, client=client).query("dead tired", top_k=3)

        assert [hit.target_id for hit in hits] == ["a", "b"]
        assert hits[0].score == 0.91
        client.embeddings.create.assert_called_once_with(
            model="text-embedding-3-small", input="dead tired"
        )
        params = cursor.execute.call_args.args[1]
        assert params[0] == "[0.1,0.2]"
        assert params[1] == ["safety_slang", "safety_case"]
        assert params[3] == 3
