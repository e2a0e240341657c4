"""Tests for import orchestration.

Status derivation is pure; the end-to-end scenarios run against the
SQLite test database through ``SqlTransactionStore``.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from app.models.import_record import ImportRecord
from app.models.transaction import TransactionRecord
from app.schemas.import_record import BatchResult, ImportStatus
from app.services.ingestion.batch_persistence import ImportSession
from app.services.ingestion.csv_parser import RecordParser
from app.services.ingestion.import_service import (
    ImportService,
    derive_import_status,
    outcome_message,
)
from app.services.store.base import ImportResult, StoreError


# ── Status derivation ────────────────────────────────────────────────


class TestDeriveImportStatus:
    @pytest.mark.parametrize(
        "inserted, duplicates, errors, skipped, expected",
        [
            (10, 0, 0, 0, ImportStatus.SUCCESS),
            (8, 2, 0, 0, ImportStatus.PARTIAL),
            (8, 0, 2, 0, ImportStatus.PARTIAL),
            (8, 1, 1, 0, ImportStatus.PARTIAL),
            (4, 0, 0, 6, ImportStatus.PARTIAL),
            (0, 0, 5, 0, ImportStatus.ERROR),
            (0, 3, 2, 0, ImportStatus.ERROR),
            (0, 5, 0, 0, ImportStatus.EMPTY),
            (0, 0, 0, 0, ImportStatus.EMPTY),
            (0, 0, 0, 5, ImportStatus.EMPTY),
        ],
    )
    def test_table(self, inserted, duplicates, errors, skipped, expected):
        result = BatchResult(
            inserted=inserted, duplicates=duplicates, errors=errors, skipped=skipped
        )
        assert derive_import_status(result) == expected

    def test_message(self):
        message = outcome_message(BatchResult(inserted=2, duplicates=1))
        assert message == "2 transaction(s) inserted, 1 duplicate(s) ignored, 0 error(s)"

    def test_message_mentions_skipped(self):
        assert "3 skipped" in outcome_message(BatchResult(inserted=1, skipped=3))


# ── End to end on SQLite ─────────────────────────────────────────────


THREE_ROWS_WITH_DUPLICATE = (
    "DATA DA TRANSAÇÃO;ID DA TRANSAÇÃO;ID DA TRANSAÇÃO NA ADQUIRENTE;"
    "ESTABELECIMENTO;MODALIDADE;VALOR BRUTO;VALOR LÍQUIDO;ADQUIRENTE\n"
    "15/01/2025 10:00:00;T1;A1;LOJA A;CREDITO; 100,00; 98,00;Cielo\n"
    "15/01/2025 11:00:00;T2;A2;LOJA B;DEBITO; 50,00; 49,50;Rede\n"
    "15/01/2025 10:00:00;T1;A1;LOJA A;CREDITO; 100,00; 98,00;Cielo\n"
)


class TestRunImport:
    def test_three_rows_with_one_duplicate(self, db_session, store):
        parsed = RecordParser().parse(THREE_ROWS_WITH_DUPLICATE, "dup.csv")
        assert len(parsed.records) == 3

        progress: list[float] = []
        outcome = ImportService(store).run_import(
            "dup.csv", parsed.records, user_id="ops", progress=progress.append
        )

        assert outcome.error is None
        assert outcome.result.inserted == 2
        assert outcome.result.duplicates == 1
        assert outcome.result.errors == 0
        assert outcome.status == ImportStatus.PARTIAL
        assert progress[-1] == 100

        record = db_session.get(ImportRecord, outcome.import_id)
        assert record.rows_imported == 2
        assert record.status == "partial"
        assert db_session.query(TransactionRecord).count() == 2

    def test_records_are_tagged_with_import_and_user(self, db_session, store, make_record):
        outcome = ImportService(store).run_import(
            "a.csv", [make_record("T1"), make_record("T2")], user_id="ops"
        )

        rows = db_session.query(TransactionRecord).all()
        assert {r.import_id for r in rows} == {outcome.import_id}
        assert {r.user_id for r in rows} == {"ops"}
        assert outcome.status == ImportStatus.SUCCESS

    def test_reimport_is_idempotent(self, db_session, store, make_record):
        records = [make_record("T1"), make_record("T2")]
        service = ImportService(store)
        service.run_import("a.csv", records)
        second = service.run_import("a.csv", records)

        assert second.result.duplicates == 2
        assert second.status == ImportStatus.EMPTY
        assert db_session.query(TransactionRecord).count() == 2
        assert db_session.query(ImportRecord).count() == 2

    def test_session_is_updated(self, store, make_record):
        session = ImportSession(filename="a.csv")
        outcome = ImportService(store).run_import("a.csv", [make_record()], session=session)

        assert session.import_id == str(outcome.import_id)
        assert session.status == "success"
        assert session.result.inserted == 1
        assert session.is_importing is False


class TestRunImportStoreFailures:
    def test_create_import_failure_is_reported(self, make_record):
        store = MagicMock()
        store.create_import.return_value = ImportResult(
            error=StoreError(code="08006", message="connection failure")
        )

        outcome = ImportService(store).run_import("a.csv", [make_record()])

        assert outcome.status == ImportStatus.ERROR
        assert outcome.import_id is None
        assert "connection failure" in outcome.error
        store.insert_many.assert_not_called()

    def test_status_update_failure_keeps_the_counts(self, store, make_record, monkeypatch):
        monkeypatch.setattr(
            store,
            "update_import_status",
            lambda *args: ImportResult(error=StoreError(code=None, message="gone")),
        )

        outcome = ImportService(store).run_import("a.csv", [make_record()])

        assert outcome.result.inserted == 1
        assert outcome.status == ImportStatus.SUCCESS
        assert "gone" in outcome.error
