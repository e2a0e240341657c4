"""Tests for the batch persistence engine.

Pure unit tests against an in-memory store with failure injection -- no
database required.
"""

from __future__ import annotations

import uuid
from typing import List, Optional

import pytest

from app.schemas.import_record import ImportCreate, ImportStatus
from app.schemas.transaction import TransactionCreate
from app.services.ingestion.batch_persistence import (
    BatchPersistenceEngine,
    ImportSession,
)
from app.services.store.base import (
    UNIQUE_VIOLATION,
    ImportListResult,
    ImportResult,
    InsertManyResult,
    InsertOneResult,
    QueryConditions,
    QueryResult,
    StoreError,
    SummaryResult,
    TransactionStore,
)


class MemoryStore(TransactionStore):
    """Keeps rows in a dict keyed by (transaction_id, acquirer_transaction_id).

    ``fail_ids`` makes any write touching those transaction ids fail with a
    non-unique error; ``raise_on_batch`` makes insert_many raise outright.
    """

    def __init__(self, fail_ids: Optional[set] = None, raise_on_batch: bool = False):
        self.rows: dict[tuple[str, str], TransactionCreate] = {}
        self.fail_ids = fail_ids or set()
        self.raise_on_batch = raise_on_batch
        self.insert_many_calls = 0
        self.insert_one_calls = 0

    @staticmethod
    def _key(record: TransactionCreate) -> tuple[str, str]:
        return (record.transaction_id, record.acquirer_transaction_id)

    def _check(self, record: TransactionCreate, seen: set) -> Optional[StoreError]:
        if record.transaction_id in self.fail_ids:
            return StoreError(code="23502", message="null value in column violates not-null")
        key = self._key(record)
        if key in self.rows or key in seen:
            return StoreError(code=UNIQUE_VIOLATION, message="duplicate key value")
        return None

    def insert_many(self, records: List[TransactionCreate]) -> InsertManyResult:
        self.insert_many_calls += 1
        if self.raise_on_batch:
            raise RuntimeError("connection reset")
        seen: set = set()
        for record in records:
            error = self._check(record, seen)
            if error is not None:
                return InsertManyResult(error=error)
            seen.add(self._key(record))
        for record in records:
            self.rows[self._key(record)] = record
        return InsertManyResult(inserted=list(records))

    def insert_one(self, record: TransactionCreate) -> InsertOneResult:
        self.insert_one_calls += 1
        error = self._check(record, set())
        if error is not None:
            return InsertOneResult(error=error)
        self.rows[self._key(record)] = record
        return InsertOneResult(data=record)

    def query(self, conditions, order_desc=True, offset=0, limit=None) -> QueryResult:
        return QueryResult(rows=list(self.rows.values()), count=len(self.rows))

    def summarize(self, conditions: QueryConditions) -> SummaryResult:
        return SummaryResult(count=len(self.rows))

    def create_import(self, data: ImportCreate) -> ImportResult:
        return ImportResult(data=data)

    def update_import_status(self, import_id, rows_imported, status: ImportStatus) -> ImportResult:
        return ImportResult(data=None)

    def list_imports(self, limit: int = 20) -> ImportListResult:
        return ImportListResult()


@pytest.fixture
def records(make_record) -> List[TransactionCreate]:
    import_id = uuid.uuid4()
    return [make_record(f"TXN-{n:03d}", import_id=import_id) for n in range(250)]


# ── Happy path ───────────────────────────────────────────────────────


class TestInsertTransactions:
    def test_all_inserted_in_batches(self, records):
        store = MemoryStore()
        result = BatchPersistenceEngine(store, batch_size=100).insert_transactions(records)

        assert result.inserted == 250
        assert result.duplicates == result.errors == result.skipped == 0
        assert store.insert_many_calls == 3
        assert store.insert_one_calls == 0

    def test_empty_input(self):
        progress: list[float] = []
        result = BatchPersistenceEngine(MemoryStore()).insert_transactions([], progress.append)

        assert result.total == 0
        assert progress[-1] == 100

    def test_reimport_counts_everything_as_duplicate(self, records):
        store = MemoryStore()
        engine = BatchPersistenceEngine(store, batch_size=100)
        engine.insert_transactions(records)

        again = engine.insert_transactions(records)
        assert again.inserted == 0
        assert again.duplicates == 250
        assert len(store.rows) == 250


# ── Failure classification ───────────────────────────────────────────


class TestClassification:
    def test_duplicate_in_batch_falls_back_to_single_inserts(self, make_record):
        batch = [make_record("A"), make_record("B"), make_record("A")]
        store = MemoryStore()
        result = BatchPersistenceEngine(store, batch_size=10).insert_transactions(batch)

        assert (result.inserted, result.duplicates, result.errors) == (2, 1, 0)
        assert store.insert_one_calls == 3

    def test_non_unique_errors_are_counted_as_errors(self, records):
        store = MemoryStore(fail_ids={"TXN-005", "TXN-150"})
        result = BatchPersistenceEngine(store, batch_size=100).insert_transactions(records)

        assert result.errors == 2
        assert result.inserted == 248
        assert result.duplicates == 0
        # Only the two failing batches were replayed record by record
        assert store.insert_one_calls == 200

    def test_exception_in_batch_counts_batch_as_errors(self, records):
        store = MemoryStore(raise_on_batch=True)
        result = BatchPersistenceEngine(store, batch_size=100).insert_transactions(records)

        assert result.errors == 250
        assert result.inserted == 0

    def test_short_bulk_result_counts_missing_rows_as_duplicates(self, make_record):
        class DroppingStore(MemoryStore):
            def insert_many(self, records):
                outcome = super().insert_many(records)
                return InsertManyResult(inserted=outcome.inserted[:-1])

        batch = [make_record("A"), make_record("B"), make_record("C")]
        result = BatchPersistenceEngine(DroppingStore(), batch_size=10).insert_transactions(batch)

        assert (result.inserted, result.duplicates) == (2, 1)

    def test_single_insert_without_data_or_error_is_duplicate(self, make_record):
        class SilentStore(MemoryStore):
            def insert_many(self, records):
                return InsertManyResult(error=StoreError(code=None, message="timeout"))

            def insert_one(self, record):
                return InsertOneResult()

        result = BatchPersistenceEngine(SilentStore()).insert_transactions([make_record("A")])
        assert result.duplicates == 1

    @pytest.mark.parametrize("batch_size", [1, 7, 100, 1000])
    def test_counts_always_sum_to_input(self, make_record, batch_size):
        records = [make_record(f"T{n % 40}") for n in range(120)]
        store = MemoryStore(fail_ids={"T3", "T17"})
        result = BatchPersistenceEngine(store, batch_size=batch_size).insert_transactions(records)

        assert result.total == 120
        assert result.inserted == 38
        assert result.errors == 6


# ── Progress ─────────────────────────────────────────────────────────


class TestProgress:
    def test_progress_is_monotone_and_ends_at_100(self, records):
        seen: list[float] = []
        BatchPersistenceEngine(MemoryStore(), batch_size=30).insert_transactions(
            records, progress=seen.append
        )

        assert seen[0] == 5
        assert seen[-1] == 100
        assert seen == sorted(seen)
        assert all(value <= 95 for value in seen[:-1])

    def test_broken_callback_does_not_stop_the_run(self, records):
        calls: list[float] = []

        def flaky(value: float) -> None:
            calls.append(value)
            raise ValueError("ui went away")

        result = BatchPersistenceEngine(MemoryStore(), batch_size=100).insert_transactions(
            records, progress=flaky
        )

        assert result.inserted == 250
        assert calls[-1] == 100

    def test_session_tracks_progress(self, records):
        session = ImportSession(filename="export.csv")
        BatchPersistenceEngine(MemoryStore()).insert_transactions(records, session=session)

        assert session.progress == 100
        assert session.is_importing is False


# ── Cancellation ─────────────────────────────────────────────────────


class TestCancellation:
    def test_cancel_between_batches_skips_the_rest(self, records):
        session = ImportSession(filename="export.csv")

        def cancel_after_first_batch(value: float) -> None:
            if value > 5:
                session.cancel()

        result = BatchPersistenceEngine(MemoryStore(), batch_size=100).insert_transactions(
            records, progress=cancel_after_first_batch, session=session
        )

        assert result.inserted == 100
        assert result.skipped == 150
        assert result.total == 250
        assert session.is_importing is False
        assert session.progress == 100

    def test_cancel_before_start(self, records):
        session = ImportSession(filename="export.csv", cancel_requested=True)
        store = MemoryStore()
        result = BatchPersistenceEngine(store).insert_transactions(records, session=session)

        assert result.skipped == 250
        assert store.insert_many_calls == 0
