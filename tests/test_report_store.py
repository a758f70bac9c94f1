"""
Report store tests: in-memory semantics and the Firestore adapter against
a mocked client.
"""

from unittest.mock import MagicMock, patch

import pytest
from firebase_admin import firestore

from app.core.errors import InvariantViolation, NotFound
from app.models.report import ReportStatus
from app.services.report_store import FirestoreReportStore, InMemoryReportStore
from tests.conftest import make_report


class TestInMemoryReportStore:

    def test_returned_reports_are_copies(self):
        store = InMemoryReportStore([make_report("r", embedding=[1.0, 0.0])])
        report = store.get("r")
        report.embedding.append(9.0)
        assert store.get("r").embedding == [1.0, 0.0]

    def test_list_filters(self):
        store = InMemoryReportStore([
            make_report("a"),
            make_report("b", status=ReportStatus.REJECTED),
            make_report("c", duplicate_of="a"),
        ])
        assert {r.id for r in store.list_reports()} == {"a", "b", "c"}
        assert {r.id for r in store.list_reports(statuses=[ReportStatus.REJECTED])} == {"b"}
        assert {r.id for r in store.list_reports(exclude_statuses=[ReportStatus.REJECTED])} == {"a", "c"}
        assert {r.id for r in store.list_reports(include_duplicates=False)} == {"a", "b"}

    def test_update_missing(self):
        with pytest.raises(NotFound):
            InMemoryReportStore().update_fields("x", {"severity_score": 1})

    def test_apply_merge_rejects_existing_duplicate(self):
        store = InMemoryReportStore([
            make_report("a", upvote_count=1),
            make_report("b", upvote_count=2, duplicate_of="a"),
            make_report("c", upvote_count=3),
        ])
        with pytest.raises(InvariantViolation):
            store.apply_merge("b", "c")
        assert store.get("c").upvote_count == 3

    def test_apply_merge_rejects_cycle(self):
        store = InMemoryReportStore([
            make_report("a", upvote_count=1),
            make_report("b", upvote_count=2, duplicate_of="a"),
        ])
        with pytest.raises(InvariantViolation, match="cycle"):
            store.apply_merge("a", "b")
        assert store.get("a").duplicate_of is None
        assert store.get("b").upvote_count == 2


def _snapshot(doc_id, data, exists=True):
    snap = MagicMock()
    snap.id = doc_id
    snap.exists = exists
    snap.to_dict.return_value = data
    return snap


class TestFirestoreReportStore:

    @pytest.fixture
    def db(self):
        return MagicMock()

    def test_get(self, db):
        db.collection.return_value.document.return_value.get.return_value = _snapshot(
            "r1", {"title": "Leak", "status": "IN_REVIEW", "upvote_count": 4}
        )
        report = FirestoreReportStore(db, "reports").get("r1")

        db.collection.assert_called_with("reports")
        assert report.id == "r1"
        assert report.status == ReportStatus.IN_REVIEW
        assert report.upvote_count == 4

    def test_get_missing(self, db):
        db.collection.return_value.document.return_value.get.return_value = _snapshot("r1", None, exists=False)
        with pytest.raises(NotFound):
            FirestoreReportStore(db, "reports").get("r1")

    def test_list_excludes_duplicates_client_side(self, db):
        query = db.collection.return_value.where.return_value
        query.stream.return_value = [
            _snapshot("a", {"status": "REPORTED"}),
            _snapshot("b", {"status": "REPORTED", "duplicate_of": "a"}),
        ]

        reports = FirestoreReportStore(db, "reports").list_reports(
            exclude_statuses=[ReportStatus.REJECTED], include_duplicates=False
        )

        assert [r.id for r in reports] == ["a"]
        field_filter = db.collection.return_value.where.call_args[1]["filter"]
        assert field_filter.field_path == "status"
        assert field_filter.op_string == "not-in"
        assert field_filter.value == ["REJECTED"]

    def test_update_fields_serializes_status(self, db):
        doc_ref = db.collection.return_value.document.return_value
        doc_ref.get.return_value = _snapshot("r", {})

        FirestoreReportStore(db, "reports").update_fields("r", {"status": ReportStatus.RESOLVED})

        doc_ref.update.assert_called_once_with({"status": "RESOLVED"})

    def test_count(self, db):
        aggregate = MagicMock()
        aggregate.value = 7
        db.collection.return_value.count.return_value.get.return_value = [[aggregate]]
        assert FirestoreReportStore(db, "reports").count() == 7


class TestFirestoreApplyMerge:

    @pytest.fixture
    def db(self):
        db = MagicMock()
        aggregate = MagicMock()
        aggregate.value = 2
        db.collection.return_value.count.return_value.get.return_value = [[aggregate]]
        return db

    @pytest.fixture(autouse=True)
    def plain_transaction(self):
        # Run the transactional body once against the mocked transaction
        with patch("app.services.report_store.firestore.transactional", side_effect=lambda func: func):
            yield

    @staticmethod
    def _documents(db, **snapshots):
        refs = {}
        for doc_id, snap in snapshots.items():
            ref = MagicMock()
            ref.get.return_value = snap
            refs[doc_id] = ref
        db.collection.return_value.document.side_effect = lambda doc_id: refs[doc_id]
        return refs

    def test_flag_and_upvote_transfer(self, db):
        refs = self._documents(
            db,
            a=_snapshot("a", {"status": "REPORTED", "upvote_count": 5}),
            b=_snapshot("b", {"status": "REPORTED", "upvote_count": 3}),
        )
        transaction = db.transaction.return_value

        FirestoreReportStore(db, "reports").apply_merge("b", "a")

        assert transaction.update.call_count == 2
        flag_call, transfer_call = transaction.update.call_args_list
        assert flag_call[0] == (refs["b"], {"duplicate_of": "a"})
        assert transfer_call[0][0] is refs["a"]
        increment = transfer_call[0][1]["upvote_count"]
        assert isinstance(increment, firestore.Increment)
        assert increment.value == 3
        refs["b"].get.assert_any_call(transaction=transaction)

    def test_missing_snapshot_writes_nothing(self, db):
        self._documents(
            db,
            a=_snapshot("a", None, exists=False),
            b=_snapshot("b", {"upvote_count": 3}),
        )
        transaction = db.transaction.return_value

        with pytest.raises(NotFound):
            FirestoreReportStore(db, "reports").apply_merge("b", "a")
        transaction.update.assert_not_called()

    def test_existing_duplicate_writes_nothing(self, db):
        self._documents(
            db,
            a=_snapshot("a", {"upvote_count": 5}),
            b=_snapshot("b", {"upvote_count": 3, "duplicate_of": "c"}),
        )
        transaction = db.transaction.return_value

        with pytest.raises(InvariantViolation):
            FirestoreReportStore(db, "reports").apply_merge("b", "a")
        transaction.update.assert_not_called()

    def test_cycle_detected_inside_transaction(self, db):
        self._documents(
            db,
            a=_snapshot("a", {"upvote_count": 5}),
            b=_snapshot("b", {"upvote_count": 3, "duplicate_of": "a"}),
        )
        transaction = db.transaction.return_value

        with pytest.raises(InvariantViolation, match="cycle"):
            FirestoreReportStore(db, "reports").apply_merge("a", "b")
        transaction.update.assert_not_called()
