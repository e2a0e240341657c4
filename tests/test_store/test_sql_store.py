"""Tests for the SQLAlchemy transaction store on the SQLite test database."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, OperationalError

from app.models.transaction import TransactionRecord
from app.schemas.import_record import ImportCreate, ImportStatus
from app.services.store.base import UNIQUE_VIOLATION, QueryConditions, StoreError
from app.services.store.sql_store import SqlTransactionStore, to_utc_naive


class TestToUtcNaive:
    def test_aware_is_converted(self):
        value = datetime(2025, 1, 15, 9, 0, tzinfo=timezone(timedelta(hours=-3)))
        assert to_utc_naive(value) == datetime(2025, 1, 15, 12, 0)

    def test_naive_and_none_pass_through(self):
        assert to_utc_naive(None) is None
        assert to_utc_naive(datetime(2025, 1, 1)) == datetime(2025, 1, 1)


class TestInserts:
    def test_insert_many(self, store, db_session, make_record):
        result = store.insert_many([make_record("A"), make_record("B")])
        assert result.error is None
        assert len(result.inserted) == 2
        assert db_session.query(TransactionRecord).count() == 2

    def test_timestamps_are_stored_as_naive_utc(self, store, db_session, make_record):
        # 09:00 in Sao Paulo is 12:00 UTC
        store.insert_one(make_record("A", when=datetime(2025, 1, 15, 9, 0)))
        row = db_session.query(TransactionRecord).one()
        assert row.transaction_timestamp == datetime(2025, 1, 15, 12, 0)

    def test_long_free_text_values_are_stored(self, store, db_session, make_record):
        long_id = "TXN" + "7" * 117
        result = store.insert_one(make_record(long_id, modality="CREDITO PARCELADO LOJISTA"))

        assert result.error is None
        row = db_session.query(TransactionRecord).one()
        assert row.transaction_id == long_id
        assert row.modality == "CREDITO PARCELADO LOJISTA"

    def test_insert_many_is_all_or_nothing(self, store, db_session, make_record):
        store.insert_one(make_record("A"))
        result = store.insert_many([make_record("B"), make_record("A")])

        assert result.error is not None
        assert result.error.is_unique_violation
        assert db_session.query(TransactionRecord).count() == 1

    def test_insert_one_duplicate(self, store, make_record):
        store.insert_one(make_record("A"))
        result = store.insert_one(make_record("A"))
        assert result.data is None
        assert result.error.code == UNIQUE_VIOLATION

    def test_same_id_different_acquirer_id_is_not_a_duplicate(self, store, make_record):
        store.insert_one(make_record("A"))
        result = store.insert_one(make_record("A", acquirer_transaction_id="OTHER"))
        assert result.error is None

    def test_foreign_key_failure_is_not_a_duplicate(self, store, make_record):
        result = store.insert_one(make_record("A", import_id=uuid.uuid4()))
        assert result.error is not None
        assert not result.error.is_unique_violation

    def test_session_is_usable_after_failure(self, store, make_record):
        store.insert_one(make_record("A"))
        store.insert_one(make_record("A"))
        assert store.insert_one(make_record("B")).error is None


class TestQuery:
    def _seed(self, store, make_record):
        store.insert_many(
            [
                make_record("A", when=datetime(2025, 1, 14, 10, 0), acquirer_name="Cielo"),
                make_record("B", when=datetime(2025, 1, 15, 10, 0), acquirer_name="Rede", modality="PIX"),
                make_record("C", when=datetime(2025, 1, 16, 10, 0), acquirer_name="Stone", modality="DEBITO"),
            ]
        )

    def test_newest_first_with_count(self, store, make_record):
        self._seed(store, make_record)
        result = store.query(QueryConditions(), True, 0, 2)

        assert result.count == 3
        assert [r.transaction_id for r in result.rows] == ["C", "B"]

    def test_offset(self, store, make_record):
        self._seed(store, make_record)
        result = store.query(QueryConditions(), True, 2, 2)
        assert [r.transaction_id for r in result.rows] == ["A"]

    def test_instant_bounds_are_inclusive(self, store, make_record):
        self._seed(store, make_record)
        # B is at 13:00 UTC on the 15th
        bound = datetime(2025, 1, 15, 13, 0, tzinfo=timezone.utc)
        conditions = QueryConditions(transaction_time_gte=bound, transaction_time_lte=bound)
        result = store.query(conditions)
        assert [r.transaction_id for r in result.rows] == ["B"]

    def test_in_lists(self, store, make_record):
        self._seed(store, make_record)
        by_acquirer = store.query(QueryConditions(acquirers=["Cielo", "Stone"]))
        by_modality = store.query(QueryConditions(modalities=["PIX"]))

        assert {r.transaction_id for r in by_acquirer.rows} == {"A", "C"}
        assert [r.transaction_id for r in by_modality.rows] == ["B"]

    def test_summarize(self, store, make_record):
        self._seed(store, make_record)
        store.insert_one(make_record("D", gross_amount=Decimal("0.10"), net_amount=Decimal("0.20")))
        result = store.summarize(QueryConditions())

        assert result.count == 4
        assert result.gross_total == Decimal("300.10")
        assert result.net_total == Decimal("294.20")

    def test_summarize_empty(self, store):
        result = store.summarize(QueryConditions(acquirers=["Nobody"]))
        assert (result.count, result.gross_total, result.net_total) == (0, Decimal("0"), Decimal("0"))

    def test_query_error_is_returned(self, db_session, monkeypatch):
        def broken(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("no such table"))

        monkeypatch.setattr(db_session, "query", broken)
        result = SqlTransactionStore(db_session).query(QueryConditions())
        assert result.rows == []
        assert "no such table" in result.error.message


class TestImports:
    def test_create_update_and_list(self, store):
        created = store.create_import(ImportCreate(filename="a.csv", user_id="ops"))
        assert created.error is None
        assert created.data.status == "pending"
        assert created.data.rows_imported == 0

        updated = store.update_import_status(created.data.id, 7, ImportStatus.PARTIAL)
        assert updated.data.rows_imported == 7
        assert updated.data.status == "partial"

        listed = store.list_imports()
        assert [r.filename for r in listed.rows] == ["a.csv"]

    def test_list_is_newest_first_and_limited(self, store):
        for name in ("a.csv", "b.csv", "c.csv"):
            store.create_import(ImportCreate(filename=name))
        rows = store.list_imports(limit=2).rows
        assert len(rows) == 2
        assert rows[0].imported_at >= rows[1].imported_at

    def test_update_unknown_import(self, store):
        result = store.update_import_status(uuid.uuid4(), 1, ImportStatus.SUCCESS)
        assert result.data is None
        assert "not found" in result.error.message


class TestErrorClassification:
    def test_integrity_error_with_unique_text(self):
        exc = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: transactions.transaction_id"))
        assert SqlTransactionStore._to_error(exc).code == UNIQUE_VIOLATION

    def test_pgcode_is_used(self):
        orig = Exception("duplicate key value violates unique constraint")
        orig.pgcode = "23505"
        error = SqlTransactionStore._to_error(IntegrityError("INSERT", {}, orig))
        assert error.code == "23505"

    def test_other_errors_keep_their_code(self):
        orig = Exception("could not connect")
        orig.pgcode = "08006"
        error = SqlTransactionStore._to_error(OperationalError("SELECT", {}, orig))
        assert error.code == "08006"
        assert not error.is_unique_violation

    def test_store_error_message_fallback(self):
        assert StoreError(code=None, message="Duplicate entry").is_unique_violation
