"""SQLAlchemy implementation of the transaction store.

Each write is its own transaction: a bulk insert either commits every row
of the batch or is rolled back as a whole, and a single insert commits or
rolls back alone. Timestamps are written as naive UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Query, Session

from app.core.logging import get_logger
from app.models.import_record import ImportRecord
from app.models.transaction import TransactionRecord
from app.schemas.import_record import ImportCreate, ImportStatus
from app.schemas.transaction import TransactionCreate
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

logger = get_logger(__name__)

_CENTS = Decimal("0.01")


def to_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware instant to naive UTC (naive input is assumed UTC)."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class SqlTransactionStore(TransactionStore):
    """Store backed by the ``transactions`` and ``imports`` tables."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Inserts ──────────────────────────────────────────────────────

    def insert_many(self, records: List[TransactionCreate]) -> InsertManyResult:
        rows = [self._to_row(record) for record in records]
        try:
            self.db.add_all(rows)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            return InsertManyResult(error=self._to_error(exc))
        return InsertManyResult(inserted=rows)

    def insert_one(self, record: TransactionCreate) -> InsertOneResult:
        row = self._to_row(record)
        try:
            self.db.add(row)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            return InsertOneResult(error=self._to_error(exc))
        return InsertOneResult(data=row)

    # ── Reads ────────────────────────────────────────────────────────

    def query(
        self,
        conditions: QueryConditions,
        order_desc: bool = True,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> QueryResult:
        try:
            query = self._filtered(self.db.query(TransactionRecord), conditions)
            total = query.count()
            order = TransactionRecord.transaction_timestamp
            query = query.order_by(
                order.desc() if order_desc else order.asc(),
                TransactionRecord.id,
            ).offset(offset)
            if limit is not None:
                query = query.limit(limit)
            rows = query.all()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Transaction query failed: %s", exc)
            return QueryResult(error=self._to_error(exc))
        return QueryResult(rows=rows, count=total)

    def summarize(self, conditions: QueryConditions) -> SummaryResult:
        try:
            query = self._filtered(
                self.db.query(
                    func.count(TransactionRecord.id),
                    func.sum(TransactionRecord.gross_amount),
                    func.sum(TransactionRecord.net_amount),
                ),
                conditions,
            )
            count, gross, net = query.one()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Transaction summary failed: %s", exc)
            return SummaryResult(error=self._to_error(exc))
        return SummaryResult(
            count=count or 0,
            gross_total=_to_cents(gross),
            net_total=_to_cents(net),
        )

    # ── Imports ──────────────────────────────────────────────────────

    def create_import(self, data: ImportCreate) -> ImportResult:
        row = ImportRecord(
            filename=data.filename,
            user_id=data.user_id,
            user_email=data.user_email,
            rows_imported=data.rows_imported,
            status=data.status.value,
            imported_at=to_utc_naive(datetime.now(timezone.utc)),
        )
        try:
            self.db.add(row)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Could not create import record for %s: %s", data.filename, exc)
            return ImportResult(error=self._to_error(exc))
        return ImportResult(data=row)

    def update_import_status(
        self,
        import_id: UUID,
        rows_imported: int,
        status: ImportStatus,
    ) -> ImportResult:
        try:
            row = self.db.get(ImportRecord, import_id)
            if row is None:
                return ImportResult(
                    error=StoreError(code=None, message=f"Import {import_id} not found")
                )
            row.rows_imported = rows_imported
            row.status = status.value
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Could not update import %s: %s", import_id, exc)
            return ImportResult(error=self._to_error(exc))
        return ImportResult(data=row)

    def list_imports(self, limit: int = 20) -> ImportListResult:
        try:
            rows = (
                self.db.query(ImportRecord)
                .order_by(ImportRecord.imported_at.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            return ImportListResult(error=self._to_error(exc))
        return ImportListResult(rows=rows)

    # ── Private helpers ──────────────────────────────────────────────

    @staticmethod
    def _filtered(query: Query, conditions: QueryConditions) -> Query:
        if conditions.transaction_time_gte is not None:
            query = query.filter(
                TransactionRecord.transaction_timestamp
                >= to_utc_naive(conditions.transaction_time_gte)
            )
        if conditions.transaction_time_lte is not None:
            query = query.filter(
                TransactionRecord.transaction_timestamp
                <= to_utc_naive(conditions.transaction_time_lte)
            )
        if conditions.acquirers:
            query = query.filter(TransactionRecord.acquirer_name.in_(conditions.acquirers))
        if conditions.modalities:
            query = query.filter(TransactionRecord.modality.in_(conditions.modalities))
        if conditions.import_id is not None:
            query = query.filter(TransactionRecord.import_id == conditions.import_id)
        return query

    @staticmethod
    def _to_row(record: TransactionCreate) -> TransactionRecord:
        data = record.model_dump()
        for key in ("export_timestamp", "transaction_timestamp", "chargeback_timestamp"):
            data[key] = to_utc_naive(data[key])
        return TransactionRecord(**data)

    @staticmethod
    def _to_error(exc: SQLAlchemyError) -> StoreError:
        orig = getattr(exc, "orig", None)
        code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        message = str(orig) if orig is not None else str(exc)
        if code is None and isinstance(exc, IntegrityError):
            lowered = message.lower()
            if "unique" in lowered or "duplicate" in lowered:
                code = UNIQUE_VIOLATION
        return StoreError(code=code, message=message)


def _to_cents(value) -> Decimal:
    """Aggregates come back as float on some backends."""
    if value is None:
        return Decimal("0")
    return Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP)
