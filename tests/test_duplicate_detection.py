"""
Duplicate detection tests: cosine similarity, candidate ranking, merges
and embedding backfill.
"""

import math
import threading
from datetime import timedelta

import pytest

from app.core.errors import EmbeddingUnavailable, InvariantViolation, NotFound, ValidationError
from app.models.report import ReportStatus
from app.services.duplicate_detection import DuplicateDetectionService, cosine_similarity, rank_candidates
from app.services.report_store import InMemoryReportStore
from tests.conftest import NOW, make_report


def _unit(similarity: float):
    """3-d unit vector whose cosine with [1, 0, 0] is `similarity`."""
    return [similarity, math.sqrt(1 - similarity ** 2), 0.0]


class _RendezvousStore(InMemoryReportStore):
    """Holds every merge until two are in flight, so both pass validation first."""

    def __init__(self, reports):
        super().__init__(reports)
        self.barrier = threading.Barrier(2, timeout=5)

    def apply_merge(self, duplicate_id, original_id):
        self.barrier.wait()
        return super().apply_merge(duplicate_id, original_id)


class _FailingWriteStore(InMemoryReportStore):

    def __init__(self, reports, failing_id):
        super().__init__(reports)
        self.failing_id = failing_id

    def update_fields(self, report_id, fields):
        if report_id == self.failing_id:
            raise RuntimeError("firestore write failed")
        super().update_fields(report_id, fields)


class TestCosineSimilarity:

    def test_identical_vectors(self):
        assert cosine_similarity([1, 2, 3], [1, 2, 3]) == pytest.approx(1.0)

    def test_opposite_vectors(self):
        assert cosine_similarity([1, 2, 3], [-1, -2, -3]) == pytest.approx(-1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity([0, 0, 0], [1, 2, 3]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValidationError):
            cosine_similarity([1, 0], [1, 0, 0])


class TestRankCandidates:

    def test_threshold_and_limit(self):
        """Similarities [0.9, 0.81, 0.5], threshold 0.8, limit 2 -> [0.9, 0.81]."""
        candidates = [
            make_report("c", embedding=_unit(0.5)),
            make_report("b", embedding=_unit(0.81)),
            make_report("a", embedding=_unit(0.9)),
        ]
        results = rank_candidates([1.0, 0.0, 0.0], candidates, threshold=0.8, limit=2)

        assert [r.report_id for r in results] == ["a", "b"]
        assert results[0].similarity == pytest.approx(0.9)
        assert results[1].similarity == pytest.approx(0.81)

    def test_ties_prefer_earlier_report(self):
        candidates = [
            make_report("newer", embedding=[1.0, 0.0, 0.0], created_at=NOW),
            make_report("older", embedding=[1.0, 0.0, 0.0], created_at=NOW - timedelta(days=1)),
        ]
        results = rank_candidates([1.0, 0.0, 0.0], candidates, threshold=0.5, limit=5)
        assert [r.report_id for r in results] == ["older", "newer"]

    def test_skips_ineligible_candidates(self):
        candidates = [
            make_report("self", embedding=[1.0, 0.0, 0.0]),
            make_report("dup", embedding=[1.0, 0.0, 0.0], duplicate_of="x"),
            make_report("rejected", embedding=[1.0, 0.0, 0.0], status=ReportStatus.REJECTED),
            make_report("no-embedding"),
            make_report("wrong-dim", embedding=[1.0, 0.0]),
            make_report("ok", embedding=[1.0, 0.0, 0.0]),
        ]
        results = rank_candidates([1.0, 0.0, 0.0], candidates, threshold=0.5, limit=10, exclude_report_id="self")
        assert [r.report_id for r in results] == ["ok"]


class TestFindSimilar:

    def test_reuses_stored_embedding(self, store, duplicate_service, embedding_provider):
        store.add(make_report("q", embedding=[1.0, 0.0, 0.0]))
        store.add(make_report("a", embedding=_unit(0.9)))

        results = duplicate_service.find_similar(store.get("q"), threshold=0.8, limit=5)

        assert [r.report_id for r in results] == ["a"]
        assert embedding_provider.calls == []

    def test_requests_embedding_when_missing(self, store, duplicate_service, embedding_provider):
        store.add(make_report("q", title="Broken pipe"))
        store.add(make_report("a", embedding=[1.0, 0.0, 0.0]))

        results = duplicate_service.find_similar(store.get("q"), threshold=0.8, limit=5)

        assert embedding_provider.calls == ["Broken pipe"]
        assert [r.report_id for r in results] == ["a"]
        # The query embedding is not stored by a lookup
        assert store.get("q").embedding is None

    def test_provider_failure_surfaces(self, store, duplicate_service, embedding_provider):
        embedding_provider.fail = True
        store.add(make_report("q"))
        with pytest.raises(EmbeddingUnavailable):
            duplicate_service.find_similar(store.get("q"))

    def test_check_text(self, store, duplicate_service, embedding_provider):
        embedding_provider.vectors["water leak on main road"] = _unit(0.95)
        store.add(make_report("a", embedding=[1.0, 0.0, 0.0]))

        result = duplicate_service.check_text("water leak on main road", threshold=0.8)

        assert result.has_potential_duplicates
        assert result.highest_similarity == pytest.approx(0.95)


class TestMarkDuplicate:

    def test_merge_transfers_upvotes(self, store, duplicate_service):
        store.add(make_report("A", upvote_count=5))
        store.add(make_report("B", upvote_count=3))

        duplicate, original = duplicate_service.mark_duplicate("B", "A")

        assert original.upvote_count == 8
        assert duplicate.duplicate_of == "A"
        assert store.get("A").upvote_count == 8
        assert store.get("B").duplicate_of == "A"

    def test_reverse_merge_is_a_cycle(self, store, duplicate_service):
        store.add(make_report("A", upvote_count=5))
        store.add(make_report("B", upvote_count=3))
        duplicate_service.mark_duplicate("B", "A")

        with pytest.raises(InvariantViolation, match="cycle"):
            duplicate_service.mark_duplicate("A", "B")
        assert store.get("A").duplicate_of is None
        assert store.get("B").upvote_count == 3

    def test_longer_cycle(self, store, duplicate_service):
        for report_id in ("A", "B", "C"):
            store.add(make_report(report_id))
        duplicate_service.mark_duplicate("B", "A")
        duplicate_service.mark_duplicate("C", "B")

        with pytest.raises(InvariantViolation):
            duplicate_service.mark_duplicate("A", "C")

    def test_self_merge(self, store, duplicate_service):
        store.add(make_report("A"))
        with pytest.raises(InvariantViolation):
            duplicate_service.mark_duplicate("A", "A")

    def test_remerge_rejected(self, store, duplicate_service):
        for report_id in ("A", "B", "C"):
            store.add(make_report(report_id, upvote_count=1))
        duplicate_service.mark_duplicate("B", "A")

        with pytest.raises(InvariantViolation):
            duplicate_service.mark_duplicate("B", "C")
        assert store.get("C").upvote_count == 1

    def test_missing_report(self, store, duplicate_service):
        store.add(make_report("A", upvote_count=2))
        with pytest.raises(NotFound):
            duplicate_service.mark_duplicate("missing", "A")
        assert store.get("A").upvote_count == 2

    def test_empty_ids(self, duplicate_service):
        with pytest.raises(ValidationError):
            duplicate_service.mark_duplicate("", "A")

    def test_concurrent_opposite_merges_cannot_form_a_cycle(self, embedding_provider):
        store = _RendezvousStore([make_report("A", upvote_count=5), make_report("B", upvote_count=3)])
        service = DuplicateDetectionService(store=store, provider=embedding_provider)
        errors = []

        def merge(duplicate_id, original_id):
            try:
                service.mark_duplicate(duplicate_id, original_id)
            except InvariantViolation as e:
                errors.append(e)

        threads = [
            threading.Thread(target=merge, args=("A", "B")),
            threading.Thread(target=merge, args=("B", "A")),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert len(errors) == 1
        a, b = store.get("A"), store.get("B")
        assert [a.duplicate_of, b.duplicate_of].count(None) == 1
        assert max(a.upvote_count, b.upvote_count) == 8


class TestBackfill:

    def test_backfill_stores_embedding(self, store, duplicate_service, embedding_provider):
        embedding_provider.vectors["Pothole Deep hole Main St"] = [0.0, 1.0, 0.0]
        store.add(make_report("r", title="Pothole", description=" Deep hole ", location_text="Main St",
                              needs_embedding_backfill=True))

        embedding = duplicate_service.backfill_embedding("r")

        assert embedding == [0.0, 1.0, 0.0]
        stored = store.get("r")
        assert stored.embedding == [0.0, 1.0, 0.0]
        assert stored.needs_embedding_backfill is False

    def test_backfill_is_idempotent(self, store, duplicate_service):
        store.add(make_report("r", title="Streetlight out"))
        first = duplicate_service.backfill_embedding("r")
        second = duplicate_service.backfill_embedding("r")
        assert first == second == store.get("r").embedding

    def test_empty_parts_are_dropped(self, store, duplicate_service, embedding_provider):
        store.add(make_report("r", title="Flooding", description="", location_text=None))
        duplicate_service.backfill_embedding("r")
        assert embedding_provider.calls == ["Flooding"]

    def test_backfill_pending_counts_failures(self, store, duplicate_service, embedding_provider):
        store.add(make_report("done", embedding=[1.0, 0.0, 0.0]))
        store.add(make_report("todo"))
        store.add(make_report("flagged", embedding=[1.0, 0.0, 0.0], needs_embedding_backfill=True))

        assert duplicate_service.backfill_pending() == {"stored": 2, "failed": 0}

        embedding_provider.fail = True
        store.update_fields("done", {"needs_embedding_backfill": True})
        assert duplicate_service.backfill_pending() == {"stored": 0, "failed": 1}

    def test_backfill_pending_isolates_store_failures(self, embedding_provider):
        store = _FailingWriteStore([make_report("a"), make_report("b")], failing_id="a")
        service = DuplicateDetectionService(store=store, provider=embedding_provider)

        assert service.backfill_pending() == {"stored": 1, "failed": 1}
        assert store.get("b").embedding is not None
        assert store.get("a").embedding is None
