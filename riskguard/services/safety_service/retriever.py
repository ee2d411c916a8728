"""Layer 2: context retrieval.

Finds corpus items similar to the comment so the classifier can tell
slang and hyperbole from genuine crisis language. Retrieval is
best-effort: any failure degrades to "no context" rather than blocking
the pipeline.
"""
import logging
from typing import List, Optional

from riskguard.shared.models import RagContextItem
from riskguard.services.corpus_service import CorpusRepository, EmbeddingIndex

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
# Hits are filtered to active items after the query, so ask for more than K
OVERFETCH_FACTOR = 3


class ContextRetriever:
    """Queries the embedding index and keeps only active corpus items."""

    def __init__(
        self,
        index: Optional[EmbeddingIndex],
        corpus: CorpusRepository,
    ):
        """Initialize retriever.

        Args:
            index: Similarity index, or None to run without Layer 2
            corpus: Corpus store used to filter hits by status
        """
        self.index = index
        self.corpus = corpus

    def retrieve(self, redacted_text: str, top_k: int = DEFAULT_TOP_K) -> List[RagContextItem]:
        """Retrieve ranked context for a comment.

        Hits whose corpus item is missing or no longer active are dropped;
        the index may lag behind archive and delete operations.

        Args:
            redacted_text: PII-redacted comment text
            top_k: Maximum snippets to return

        Returns:
            Snippets in descending score order, possibly empty
        """
        if self.index is None or not redacted_text or top_k <= 0:
            return []

        try:
            hits = self.index.query(redacted_text, top_k * OVERFETCH_FACTOR)
            if not hits:
                return []
            active = self.corpus.find_active_by_ids([hit.target_id for hit in hits])
        except Exception as e:
            logger.warning(
                "CONTEXT_RETRIEVAL_FAILED",
                extra={"error": str(e), "error_type": type(e).__name__}
            )
            return []

        context = []
        seen = set()
        for hit in sorted(hits, key=lambda h: h.score, reverse=True):
            item = active.get(hit.target_id)
            # Multi-chunk items hit once per chunk; keep the best
            if item is None or item.id in seen:
                continue
            seen.add(item.id)
            context.append(RagContextItem(
                label=item.label,
                content=item.content,
                score=hit.score,
                kind=item.kind.value,
            ))

        dropped = len(hits) - len(context)
        if dropped:
            logger.info(
                "CONTEXT_STALE_HITS_DROPPED",
                extra={"dropped": dropped, "returned": min(len(context), top_k)}
            )

        return context[:top_k]
