"""Contract of the relational store consumed by the ingestion and query services.

Every operation returns a result structure carrying either data or a
``StoreError``; store failures are never raised to the caller.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from app.schemas.import_record import ImportCreate, ImportStatus
from app.schemas.transaction import TransactionCreate

# PostgreSQL SQLSTATE for unique_violation
UNIQUE_VIOLATION = "23505"


@dataclass
class StoreError:
    """A failed store call.

    Attributes:
        code: SQLSTATE-like code when known (``23505`` for a duplicate key).
        message: Driver message, for logs and diagnostics.
    """

    code: Optional[str]
    message: str

    @property
    def is_unique_violation(self) -> bool:
        if self.code == UNIQUE_VIOLATION:
            return True
        lowered = self.message.lower()
        return "duplicate" in lowered or "unique" in lowered


@dataclass
class QueryConditions:
    """Server-side filter: an instant range plus IN-lists.

    Bounds are absolute (UTC) instants, both inclusive.
    """

    transaction_time_gte: Optional[datetime] = None
    transaction_time_lte: Optional[datetime] = None
    acquirers: List[str] = field(default_factory=list)
    modalities: List[str] = field(default_factory=list)
    import_id: Optional[UUID] = None


@dataclass
class InsertManyResult:
    inserted: List[Any] = field(default_factory=list)
    error: Optional[StoreError] = None


@dataclass
class InsertOneResult:
    data: Optional[Any] = None
    error: Optional[StoreError] = None


@dataclass
class QueryResult:
    rows: List[Any] = field(default_factory=list)
    count: int = 0
    error: Optional[StoreError] = None


@dataclass
class SummaryResult:
    count: int = 0
    gross_total: Decimal = Decimal("0")
    net_total: Decimal = Decimal("0")
    error: Optional[StoreError] = None


@dataclass
class ImportResult:
    data: Optional[Any] = None
    error: Optional[StoreError] = None


@dataclass
class ImportListResult:
    rows: List[Any] = field(default_factory=list)
    error: Optional[StoreError] = None


class TransactionStore(ABC):
    """Remote relational store supporting filtered SELECT, INSERT and COUNT."""

    @abstractmethod
    def insert_many(self, records: List[TransactionCreate]) -> InsertManyResult:
        """Bulk insert; ``inserted`` holds the rows the store actually kept."""

    @abstractmethod
    def insert_one(self, record: TransactionCreate) -> InsertOneResult:
        """Single insert; a duplicate key surfaces as a unique-violation error."""

    @abstractmethod
    def query(
        self,
        conditions: QueryConditions,
        order_desc: bool = True,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> QueryResult:
        """Rows ordered by transaction time plus the exact matching count."""

    @abstractmethod
    def summarize(self, conditions: QueryConditions) -> SummaryResult:
        """Count and gross/net sums over every row matching *conditions*."""

    @abstractmethod
    def create_import(self, data: ImportCreate) -> ImportResult:
        """Open a new import record."""

    @abstractmethod
    def update_import_status(
        self,
        import_id: UUID,
        rows_imported: int,
        status: ImportStatus,
    ) -> ImportResult:
        """Store the terminal status of an import."""

    @abstractmethod
    def list_imports(self, limit: int = 20) -> ImportListResult:
        """Most recent imports first."""
