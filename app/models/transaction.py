"""Transaction record model: one settled payment event from an acquirer export."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class TransactionRecord(Base):
    """Represents a single row of an acquirer settlement export.

    Timestamps are stored as naive UTC. Rows are written once by the
    batch persistence engine and never updated by the ingestion core.
    """

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    import_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("imports.id"),
        nullable=True,
        index=True,
    )

    export_timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    transaction_timestamp: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        index=True,
    )
    chargeback_timestamp: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
    )

    transaction_id: Mapped[str] = mapped_column(Text, nullable=False)
    acquirer_transaction_id: Mapped[str] = mapped_column(Text, nullable=False)

    establishment_name: Mapped[str] = mapped_column(Text, nullable=False)
    establishment_tax_id: Mapped[str] = mapped_column(String(20), default="")
    establishment_mcc: Mapped[Optional[str]] = mapped_column(String(10))
    accreditor: Mapped[str] = mapped_column(String(255), default="")
    accreditor_tax_id: Mapped[str] = mapped_column(String(20), default="")
    representative: Mapped[Optional[str]] = mapped_column(String(255))
    representative_tax_id: Mapped[Optional[str]] = mapped_column(String(20))
    cardholder: Mapped[Optional[str]] = mapped_column(String(255))
    card_number: Mapped[Optional[str]] = mapped_column(String(30))
    customer: Mapped[Optional[str]] = mapped_column(String(255))

    modality: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="DEBITO | CREDITO | PIX (other values kept verbatim)",
    )
    installments: Mapped[Optional[int]] = mapped_column(Integer)
    card_brand: Mapped[Optional[str]] = mapped_column(String(50))
    equipment_serial: Mapped[Optional[str]] = mapped_column(String(100))
    equipment_id_number: Mapped[Optional[str]] = mapped_column(String(100))
    equipment_model: Mapped[Optional[str]] = mapped_column(String(100))

    gross_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)
    original_amount: Mapped[Decimal] = mapped_column(Numeric(15, 2), nullable=False)

    acquirer_name: Mapped[str] = mapped_column(Text, nullable=False)
    channel: Mapped[str] = mapped_column(String(50), default="")
    status: Mapped[str] = mapped_column(String(50), default="")
    failure_reason: Mapped[Optional[str]] = mapped_column(String(255))
    plan: Mapped[Optional[str]] = mapped_column(String(100))
    nsu: Mapped[Optional[str]] = mapped_column(String(50))
    split: Mapped[str] = mapped_column(String(50), default="")
    parent_transaction: Mapped[str] = mapped_column(String(100), default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint(
            "transaction_id",
            "acquirer_transaction_id",
            name="uq_transactions_transaction_acquirer_id",
        ),
        Index("ix_transactions_acquirer_modality", "acquirer_name", "modality"),
    )

    def __repr__(self) -> str:
        return (
            f"<TransactionRecord(transaction_id={self.transaction_id!r}, "
            f"gross_amount={self.gross_amount}, modality={self.modality!r})>"
        )
