"""Corpus lifecycle management.

Items move through draft -> active -> archived. Entering ACTIVE is the
only event that requests indexing; the retriever filters on status, so
archiving takes effect immediately even if the index still holds the
old vector.
"""
import logging
import uuid
from typing import Dict, FrozenSet, List, Optional, Tuple

from riskguard.shared.database import NotFoundError
from riskguard.shared.utils import hash_pii, redact_pii
from .corpus_repository import CorpusItem, CorpusKind, CorpusRepository, CorpusStatus
from .embedding_client import EmbeddingQueue

logger = logging.getLogger(__name__)


class InvalidTransitionError(ValueError):
    """Requested status change is not an allowed lifecycle edge."""
    pass


ALLOWED_TRANSITIONS: FrozenSet[Tuple[CorpusStatus, CorpusStatus]] = frozenset({
    (CorpusStatus.DRAFT, CorpusStatus.ACTIVE),
    (CorpusStatus.DRAFT, CorpusStatus.ARCHIVED),
    (CorpusStatus.ACTIVE, CorpusStatus.ARCHIVED),
    (CorpusStatus.ARCHIVED, CorpusStatus.ACTIVE),
})

INDEXING_PRIORITY = "high"


class CorpusService:
    """Create, edit, activate and archive corpus items."""

    def __init__(
        self,
        repository: Optional[CorpusRepository] = None,
        queue: Optional[EmbeddingQueue] = None,
    ):
        self.repository = repository or CorpusRepository()
        self.queue = queue or EmbeddingQueue()

    def create(self, kind: CorpusKind, label: str, content: str, user_id: str) -> CorpusItem:
        """Create a draft item. Drafts are never retrievable."""
        item = CorpusItem(
            id=str(uuid.uuid4()),
            kind=kind,
            label=label.strip(),
            content=content.strip(),
            created_by=user_id,
            updated_by=user_id,
        )
        stored = self.repository.insert(item)

        logger.info(
            "CORPUS_ITEM_CREATED",
            extra={
                "item_id": stored.id,
                "kind": kind.value,
                "user_hash": hash_pii(user_id),
            }
        )
        return stored

    def get(self, item_id: str) -> CorpusItem:
        """Load one item.

        Raises:
            NotFoundError: If the item does not exist
        """
        item = self.repository.find_by_id(item_id)
        if item is None:
            raise NotFoundError(f"Corpus item {item_id} not found")
        return item

    def list_items(
        self,
        kind: Optional[CorpusKind] = None,
        status: Optional[CorpusStatus] = None,
        search: Optional[str] = None,
    ) -> List[CorpusItem]:
        return self.repository.search(kind=kind, status=status, search=search)

    def update(
        self,
        item_id: str,
        user_id: str,
        label: Optional[str] = None,
        content: Optional[str] = None,
    ) -> CorpusItem:
        """Edit label and/or content.

        Changing the content of an active item requests re-indexing so
        retrieval does not keep matching on the old text.

        Raises:
            NotFoundError: If the item does not exist
        """
        item = self.get(item_id)

        changes: Dict[str, str] = {}
        if label is not None:
            changes["label"] = label.strip()
        if content is not None:
            changes["content"] = content.strip()
        if not changes:
            return item

        updated = self.repository.save(item.revised(user_id, **changes))

        content_changed = "content" in changes and changes["content"] != item.content
        if content_changed and updated.is_active:
            self._request_indexing(updated)

        logger.info(
            "CORPUS_ITEM_UPDATED",
            extra={
                "item_id": item_id,
                "fields": sorted(changes),
                "reindexed": content_changed and updated.is_active,
                "user_hash": hash_pii(user_id),
            }
        )
        return updated

    def set_status(self, item_id: str, status: CorpusStatus, user_id: str) -> CorpusItem:
        """Move an item along its lifecycle.

        Raises:
            NotFoundError: If the item does not exist
            InvalidTransitionError: If the edge is not allowed
        """
        item = self.get(item_id)

        if (item.status, status) not in ALLOWED_TRANSITIONS:
            raise InvalidTransitionError(
                f"Cannot move corpus item from {item.status.value} to {status.value}"
            )

        updated = self.repository.save(item.revised(user_id, status=status))

        logger.info(
            "CORPUS_STATUS_CHANGED",
            extra={
                "item_id": item_id,
                "from_status": item.status.value,
                "to_status": status.value,
                "user_hash": hash_pii(user_id),
            }
        )

        if status is CorpusStatus.ACTIVE:
            self._request_indexing(updated)

        return updated

    def delete(self, item_id: str) -> bool:
        deleted = self.repository.delete(item_id)
        logger.info("CORPUS_ITEM_DELETED", extra={"item_id": item_id, "deleted": deleted})
        return deleted

    def promote_to_corpus(
        self,
        text: str,
        label: str,
        kind: CorpusKind,
        user_id: str,
        activate: bool = False,
    ) -> CorpusItem:
        """Turn a reviewed comment snippet into a corpus item.

        The snippet is PII-redacted before it is stored.

        Args:
            text: Comment excerpt chosen by the reviewer
            label: Short meaning or verdict for the snippet
            kind: SLANG or CASE
            user_id: Acting reviewer
            activate: Activate immediately instead of leaving a draft

        Returns:
            The created (and possibly activated) item
        """
        redacted = redact_pii(text).text
        item = self.create(kind, label, redacted, user_id)
        if activate:
            item = self.set_status(item.id, CorpusStatus.ACTIVE, user_id)
        return item

    def _request_indexing(self, item: CorpusItem) -> None:
        published = self.queue.enqueue(
            item.kind.embedding_target_type,
            item.id,
            priority=INDEXING_PRIORITY,
        )
        if not published:
            logger.warning(
                "CORPUS_INDEXING_NOT_REQUESTED",
                extra={"item_id": item.id, "kind": item.kind.value}
            )
