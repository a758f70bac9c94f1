"""
Duplicate Detection Service - embedding-based near-duplicate search and merges.

DESIGN PRINCIPLES:
- Similarity is cosine similarity over provider embeddings of one fixed dimension
- Only candidates that already carry a stored embedding are compared
  (reports awaiting backfill are skipped, not embedded on the fly)
- Duplicates and REJECTED reports never appear as candidates
- Merges are validated (self-merge, cycles, re-merge) before any write,
  then applied atomically by the store
"""

from app.core.errors import EmbeddingUnavailable, InvariantViolation, NotFound, ValidationError
from app.core.settings import settings
from app.models.report import DuplicateCheckResult, Report, ReportStatus, SimilarityCandidate
from app.services.ai_plugin.base import EmbeddingProvider
from app.services.ai_plugin.registry import get_embedding_provider
from app.services.report_store import ReportStore, closes_cycle, get_report_store
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple
import logging

import numpy as np

logger = logging.getLogger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity in [-1, 1].

    A dimension mismatch is a programming error and raises ValidationError.
    A zero vector has no direction and scores 0.0 against anything.
    """
    if len(a) != len(b):
        raise ValidationError(
            "Vectors must have the same dimension",
            {"left": len(a), "right": len(b)},
        )
    v1 = np.asarray(a, dtype=float)
    v2 = np.asarray(b, dtype=float)
    norm1, norm2 = np.linalg.norm(v1), np.linalg.norm(v2)
    if norm1 == 0 or norm2 == 0:
        return 0.0
    similarity = float(np.dot(v1, v2) / (norm1 * norm2))
    return max(-1.0, min(1.0, similarity))


def _created_at_key(report: Report) -> datetime:
    created_at = report.created_at
    if created_at.tzinfo is None:
        return created_at.replace(tzinfo=timezone.utc)
    return created_at


def rank_candidates(
    query_embedding: Sequence[float],
    candidates: Iterable[Report],
    threshold: float,
    limit: int,
    exclude_report_id: Optional[str] = None,
) -> List[SimilarityCandidate]:
    """
    Rank stored reports against a query embedding.

    Candidates without an embedding of the query's dimension, duplicates,
    REJECTED reports and exclude_report_id are skipped. Results at or above
    threshold are sorted by similarity (desc), ties by earlier created_at,
    then truncated to limit.
    """
    dimension = len(query_embedding)
    scored: List[Tuple[float, Report]] = []

    for candidate in candidates:
        if candidate.id == exclude_report_id:
            continue
        if candidate.is_duplicate or candidate.status == ReportStatus.REJECTED:
            continue
        if not candidate.embedding or len(candidate.embedding) != dimension:
            continue

        similarity = cosine_similarity(query_embedding, candidate.embedding)
        if similarity >= threshold:
            scored.append((similarity, candidate))

    # sort() is stable, so equal (similarity, created_at) keep pool order
    scored.sort(key=lambda item: (-item[0], _created_at_key(item[1])))

    return [
        SimilarityCandidate(
            report_id=report.id,
            similarity=similarity,
            title=report.title,
            location_text=report.location_text,
            created_at=report.created_at,
            upvote_count=report.upvote_count,
        )
        for similarity, report in scored[: max(0, limit)]
    ]


class DuplicateDetectionService:
    """
    Service for finding and merging duplicate reports.
    """

    def __init__(self, store: Optional[ReportStore] = None, provider: Optional[EmbeddingProvider] = None):
        self.store = store or get_report_store()
        self.provider = provider or get_embedding_provider()

    def _embed(self, text: str) -> List[float]:
        embedding = self.provider.embed(text)
        if len(embedding) != self.provider.dimension:
            raise EmbeddingUnavailable(
                "Embedding provider returned a vector of the wrong dimension",
                {"expected": self.provider.dimension, "received": len(embedding)},
            )
        return embedding

    def query_embedding(self, report: Report) -> List[float]:
        """Reuse the report's stored embedding, or request a fresh one (not stored)."""
        if report.embedding and len(report.embedding) == self.provider.dimension:
            return report.embedding
        return self._embed(report.embedding_text())

    def find_similar(
        self,
        report: Report,
        candidate_pool: Optional[Iterable[Report]] = None,
        threshold: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[SimilarityCandidate]:
        """
        Find stored reports similar to the given one.

        Raises EmbeddingUnavailable if the report has no embedding and the
        provider cannot produce one.
        """
        threshold = settings.SIMILARITY_THRESHOLD if threshold is None else threshold
        limit = settings.SIMILAR_REPORTS_LIMIT if limit is None else limit

        if candidate_pool is None:
            candidate_pool = self.store.list_reports(
                exclude_statuses=[ReportStatus.REJECTED], include_duplicates=False
            )

        query_embedding = self.query_embedding(report)
        results = rank_candidates(query_embedding, candidate_pool, threshold, limit, exclude_report_id=report.id)

        logger.info(
            f"Similar report search for {report.id}: {len(results)} found "
            f"(threshold {threshold}, highest {results[0].similarity if results else 0:.2f})"
        )
        return results

    def check_text(
        self,
        text: str,
        threshold: Optional[float] = None,
        limit: Optional[int] = None,
        exclude_report_id: Optional[str] = None,
    ) -> DuplicateCheckResult:
        """
        Duplicate check for free text, e.g. a submission not yet stored.
        """
        threshold = settings.SIMILARITY_THRESHOLD if threshold is None else threshold
        limit = settings.SIMILAR_REPORTS_LIMIT if limit is None else limit

        query_embedding = self._embed(text)
        pool = self.store.list_reports(exclude_statuses=[ReportStatus.REJECTED], include_duplicates=False)
        duplicates = rank_candidates(query_embedding, pool, threshold, limit, exclude_report_id=exclude_report_id)
        return DuplicateCheckResult(
            has_potential_duplicates=bool(duplicates),
            duplicates=duplicates,
            highest_similarity=duplicates[0].similarity if duplicates else 0.0,
        )

    def _would_create_cycle(self, duplicate_id: str, original_id: str) -> bool:
        """
        Early cycle check against the current snapshot. The store repeats
        it inside the atomic merge.
        """
        def parent_of(report_id: str) -> Optional[str]:
            try:
                return self.store.get(report_id).duplicate_of
            except NotFound:
                return None

        return closes_cycle(duplicate_id, original_id, parent_of, self.store.count())

    def mark_duplicate(self, duplicate_id: str, original_id: str) -> Tuple[Report, Report]:
        """
        Mark duplicate_id as a duplicate of original_id and move its upvotes.

        Raises:
            ValidationError: empty ids
            InvariantViolation: self-merge, cycle, or duplicate already merged
            NotFound: either report missing
        """
        if not duplicate_id or not original_id:
            raise ValidationError("Both duplicate_id and original_id are required")
        if duplicate_id == original_id:
            raise InvariantViolation("A report cannot be marked as a duplicate of itself", {"report_id": duplicate_id})

        logger.info(f"Marking report {duplicate_id} as duplicate of {original_id}")

        duplicate = self.store.get(duplicate_id)
        self.store.get(original_id)

        if duplicate.is_duplicate:
            raise InvariantViolation(
                f"Report {duplicate_id} is already a duplicate of {duplicate.duplicate_of}",
                {"duplicate_id": duplicate_id, "duplicate_of": duplicate.duplicate_of},
            )
        if self._would_create_cycle(duplicate_id, original_id):
            raise InvariantViolation(
                "Merge would create a duplicate cycle",
                {"duplicate_id": duplicate_id, "original_id": original_id},
            )

        merged_duplicate, merged_original = self.store.apply_merge(duplicate_id, original_id)
        logger.info(
            f"Report {duplicate_id} merged into {original_id} "
            f"(+{duplicate.upvote_count} upvotes, now {merged_original.upvote_count})"
        )
        return merged_duplicate, merged_original

    def backfill_embedding(self, report_id: str) -> List[float]:
        """
        Compute and store the embedding for a report. Idempotent: running it
        twice on unchanged text stores the same vector.
        """
        report = self.store.get(report_id)
        embedding = self._embed(report.embedding_text())
        self.store.update_fields(report_id, {"embedding": embedding, "needs_embedding_backfill": False})
        logger.info(f"Report {report_id} embedding stored ({len(embedding)} dims)")
        return embedding

    def backfill_pending(self) -> dict:
        """Embed every report flagged for backfill; failures are counted, not raised."""
        stored = 0
        failed = 0
        for report in self.store.list_reports():
            if not report.needs_embedding_backfill and report.embedding:
                continue
            try:
                self.backfill_embedding(report.id)
                stored += 1
            except EmbeddingUnavailable as e:
                logger.warning(f"Embedding backfill failed for report {report.id}: {e.message}")
                failed += 1
            except Exception as e:
                logger.error(f"Embedding backfill failed for report {report.id}: {e}", exc_info=True)
                failed += 1
        logger.info(f"Embedding backfill completed: {stored} stored, {failed} failed")
        return {"stored": stored, "failed": failed}


# Global service instance (singleton pattern)
_duplicate_service = None


def get_duplicate_detection_service() -> DuplicateDetectionService:
    """
    Get or create DuplicateDetectionService singleton instance.
    """
    global _duplicate_service
    if _duplicate_service is None:
        _duplicate_service = DuplicateDetectionService()
    return _duplicate_service
