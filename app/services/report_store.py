"""
Report Store - the data-store interface the triage core reads and writes through.

The persistence layer owns report creation and deletion. The triage core
only touches specific fields, plus one atomic multi-document operation:
the duplicate merge (flag write + upvote transfer).
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional, Tuple
import logging
import threading

from firebase_admin import firestore

from app.core.errors import InvariantViolation, NotFound
from app.core.settings import settings
from app.models.report import Report, ReportStatus
from app.utils.firestore_helpers import where_filter

logger = logging.getLogger(__name__)


class ReportStore(ABC):
    """
    Abstract report store.
    """

    @abstractmethod
    def get(self, report_id: str) -> Report:
        """Raises NotFound if the report does not exist."""
        pass

    @abstractmethod
    def list_reports(
        self,
        statuses: Optional[Iterable[ReportStatus]] = None,
        exclude_statuses: Optional[Iterable[ReportStatus]] = None,
        include_duplicates: bool = True,
    ) -> List[Report]:
        pass

    @abstractmethod
    def count(self) -> int:
        """Total number of stored reports (duplicates included)."""
        pass

    @abstractmethod
    def update_fields(self, report_id: str, fields: Dict) -> None:
        """Partial update. Raises NotFound if the report does not exist."""
        pass

    @abstractmethod
    def apply_merge(self, duplicate_id: str, original_id: str) -> Tuple[Report, Report]:
        """
        Atomically set duplicate.duplicate_of = original_id and add the
        duplicate's upvote_count onto the original.

        Either both writes land or neither does. Returns the updated
        (duplicate, original) pair.

        Raises:
            NotFound: either report is missing
            InvariantViolation: the duplicate already points somewhere, or
                the original's chain leads back to the duplicate
        """
        pass


def closes_cycle(
    duplicate_id: str,
    original_id: str,
    parent_of: Callable[[str], Optional[str]],
    max_steps: int,
) -> bool:
    """
    Walk original's duplicate_of chain; reaching duplicate_id means the
    merge would close a loop.

    parent_of returns a report's duplicate_of, or None for a missing report.
    A chain longer than max_steps is already a loop.
    """
    current_id: Optional[str] = original_id
    steps = 0
    while current_id is not None:
        if current_id == duplicate_id:
            return True
        if steps >= max_steps:
            logger.error(f"duplicate_of chain from {original_id} exceeds {max_steps} steps")
            return True
        current_id = parent_of(current_id)
        steps += 1
    return False


def _cycle_error(duplicate_id: str, original_id: str) -> InvariantViolation:
    return InvariantViolation(
        "Merge would create a duplicate cycle",
        {"duplicate_id": duplicate_id, "original_id": original_id},
    )


def _matches(report: Report, statuses, exclude_statuses, include_duplicates: bool) -> bool:
    if statuses is not None and report.status not in statuses:
        return False
    if exclude_statuses is not None and report.status in exclude_statuses:
        return False
    if not include_duplicates and report.is_duplicate:
        return False
    return True


class InMemoryReportStore(ReportStore):
    """
    Process-local store for development (USE_MOCK_DB=true) and tests.
    All access is serialized by one lock; returned reports are copies.
    """

    def __init__(self, reports: Optional[Iterable[Report]] = None):
        self._lock = threading.Lock()
        self._reports: Dict[str, Report] = {}
        for report in reports or []:
            self._reports[report.id] = report.model_copy(deep=True)

    def add(self, report: Report) -> Report:
        with self._lock:
            self._reports[report.id] = report.model_copy(deep=True)
        return report

    def get(self, report_id: str) -> Report:
        with self._lock:
            report = self._reports.get(report_id)
            if report is None:
                raise NotFound(f"Report {report_id} not found", {"report_id": report_id})
            return report.model_copy(deep=True)

    def list_reports(self, statuses=None, exclude_statuses=None, include_duplicates=True) -> List[Report]:
        statuses = set(statuses) if statuses is not None else None
        exclude_statuses = set(exclude_statuses) if exclude_statuses is not None else None
        with self._lock:
            return [
                r.model_copy(deep=True)
                for r in self._reports.values()
                if _matches(r, statuses, exclude_statuses, include_duplicates)
            ]

    def count(self) -> int:
        with self._lock:
            return len(self._reports)

    def update_fields(self, report_id: str, fields: Dict) -> None:
        with self._lock:
            report = self._reports.get(report_id)
            if report is None:
                raise NotFound(f"Report {report_id} not found", {"report_id": report_id})
            self._reports[report_id] = report.model_copy(update=fields, deep=True)

    def apply_merge(self, duplicate_id: str, original_id: str) -> Tuple[Report, Report]:
        with self._lock:
            duplicate = self._reports.get(duplicate_id)
            original = self._reports.get(original_id)
            if duplicate is None or original is None:
                raise NotFound(
                    "One or both reports not found",
                    {"duplicate_id": duplicate_id, "original_id": original_id},
                )
            if duplicate.duplicate_of is not None:
                raise InvariantViolation(
                    f"Report {duplicate_id} is already a duplicate of {duplicate.duplicate_of}",
                    {"duplicate_id": duplicate_id, "duplicate_of": duplicate.duplicate_of},
                )

            def parent_of(report_id: str) -> Optional[str]:
                report = self._reports.get(report_id)
                return report.duplicate_of if report else None

            if closes_cycle(duplicate_id, original_id, parent_of, len(self._reports)):
                raise _cycle_error(duplicate_id, original_id)

            # Build both new snapshots before publishing either
            new_duplicate = duplicate.model_copy(update={"duplicate_of": original_id}, deep=True)
            new_original = original.model_copy(
                update={"upvote_count": original.upvote_count + duplicate.upvote_count}, deep=True
            )
            self._reports[duplicate_id] = new_duplicate
            self._reports[original_id] = new_original
            return new_duplicate.model_copy(deep=True), new_original.model_copy(deep=True)


def _to_document(fields: Dict) -> Dict:
    document = {}
    for key, value in fields.items():
        if isinstance(value, ReportStatus):
            value = value.value
        document[key] = value
    return document


def _from_snapshot(doc) -> Report:
    data = doc.to_dict() or {}
    data["id"] = doc.id
    return Report(**data)


class FirestoreReportStore(ReportStore):
    """
    Firestore-backed store. Reports live in the REPORTS_COLLECTION collection,
    one document per report, fields named as on the Report model.
    """

    def __init__(self, db, collection: Optional[str] = None):
        self.db = db
        self.collection_name = collection or settings.REPORTS_COLLECTION

    @property
    def _collection(self):
        return self.db.collection(self.collection_name)

    def get(self, report_id: str) -> Report:
        doc = self._collection.document(report_id).get()
        if not doc.exists:
            raise NotFound(f"Report {report_id} not found", {"report_id": report_id})
        return _from_snapshot(doc)

    def list_reports(self, statuses=None, exclude_statuses=None, include_duplicates=True) -> List[Report]:
        query = self._collection
        if statuses is not None:
            query = where_filter(query, "status", "in", [ReportStatus(s).value for s in statuses])
        elif exclude_statuses is not None:
            query = where_filter(query, "status", "not-in", [ReportStatus(s).value for s in exclude_statuses])

        reports = []
        for doc in query.stream():
            report = _from_snapshot(doc)
            if not include_duplicates and report.is_duplicate:
                continue
            reports.append(report)
        return reports

    def count(self) -> int:
        result = self._collection.count().get()
        # Aggregation results come back as [[AggregationResult]]
        return int(result[0][0].value)

    def update_fields(self, report_id: str, fields: Dict) -> None:
        doc_ref = self._collection.document(report_id)
        if not doc_ref.get().exists:
            raise NotFound(f"Report {report_id} not found", {"report_id": report_id})
        doc_ref.update(_to_document(fields))

    def apply_merge(self, duplicate_id: str, original_id: str) -> Tuple[Report, Report]:
        duplicate_ref = self._collection.document(duplicate_id)
        original_ref = self._collection.document(original_id)
        max_steps = self.count()

        @firestore.transactional
        def _merge(transaction):
            duplicate_snap = duplicate_ref.get(transaction=transaction)
            original_snap = original_ref.get(transaction=transaction)
            if not duplicate_snap.exists or not original_snap.exists:
                raise NotFound(
                    "One or both reports not found",
                    {"duplicate_id": duplicate_id, "original_id": original_id},
                )
            duplicate_data = duplicate_snap.to_dict() or {}
            if duplicate_data.get("duplicate_of"):
                raise InvariantViolation(
                    f"Report {duplicate_id} is already a duplicate of {duplicate_data['duplicate_of']}",
                    {"duplicate_id": duplicate_id, "duplicate_of": duplicate_data["duplicate_of"]},
                )

            # Chain reads join the transaction, so a concurrent merge retries
            def parent_of(report_id: str) -> Optional[str]:
                if report_id == original_id:
                    snap = original_snap
                else:
                    snap = self._collection.document(report_id).get(transaction=transaction)
                if not snap.exists:
                    return None
                return (snap.to_dict() or {}).get("duplicate_of")

            if closes_cycle(duplicate_id, original_id, parent_of, max_steps):
                raise _cycle_error(duplicate_id, original_id)

            transferred = int(duplicate_data.get("upvote_count") or 0)
            transaction.update(duplicate_ref, {"duplicate_of": original_id})
            transaction.update(original_ref, {"upvote_count": firestore.Increment(transferred)})

        _merge(self.db.transaction())
        return self.get(duplicate_id), self.get(original_id)


_report_store: Optional[ReportStore] = None


def get_report_store() -> ReportStore:
    """
    Get or create the ReportStore singleton.

    USE_MOCK_DB=true selects the in-memory store, otherwise Firestore.
    """
    global _report_store
    if _report_store is None:
        if settings.USE_MOCK_DB:
            logger.info("[STORE] Using in-memory report store")
            _report_store = InMemoryReportStore()
        else:
            from app.config.firebase import get_db
            _report_store = FirestoreReportStore(get_db())
    return _report_store
