"""Pydantic schemas for acquirer transaction records."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Modality(str, Enum):
    """Payment method classes known to the dashboard.

    The ``modality`` field on records is a plain string: exports sometimes
    carry values outside this set and those are kept verbatim.
    """

    DEBIT = "DEBITO"
    CREDIT = "CREDITO"
    PIX = "PIX"

    @classmethod
    def is_known(cls, value: str) -> bool:
        return value in cls._value2member_map_


class TransactionBase(BaseModel):
    """Shared fields for creating and reading transaction records."""

    export_timestamp: datetime
    transaction_timestamp: datetime
    chargeback_timestamp: Optional[datetime] = None

    transaction_id: str
    acquirer_transaction_id: str

    establishment_name: str
    establishment_tax_id: str = ""
    establishment_mcc: Optional[str] = None
    accreditor: str = ""
    accreditor_tax_id: str = ""
    representative: Optional[str] = None
    representative_tax_id: Optional[str] = None
    cardholder: Optional[str] = None
    card_number: Optional[str] = None
    customer: Optional[str] = None

    modality: str = Field(
        ...,
        description="DEBITO | CREDITO | PIX (unrecognized values pass through)",
    )
    installments: Optional[int] = None
    card_brand: Optional[str] = None
    equipment_serial: Optional[str] = None
    equipment_id_number: Optional[str] = None
    equipment_model: Optional[str] = None

    gross_amount: Decimal = Decimal("0")
    net_amount: Decimal = Decimal("0")
    original_amount: Decimal = Decimal("0")

    acquirer_name: str
    channel: str = ""
    status: str = ""
    failure_reason: Optional[str] = None
    plan: Optional[str] = None
    nsu: Optional[str] = None
    split: str = ""
    parent_transaction: str = ""


class TransactionCreate(TransactionBase):
    """A parsed record ready to be persisted."""

    import_id: Optional[UUID] = None
    user_id: Optional[str] = None


class TransactionResponse(TransactionBase):
    """Schema returned when reading a persisted record."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    import_id: Optional[UUID] = None
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator(
        "export_timestamp",
        "transaction_timestamp",
        "chargeback_timestamp",
        "created_at",
        "updated_at",
    )
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """The store keeps naive UTC; hand out aware instants."""
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class TransactionSummary(BaseModel):
    """Aggregates over the rows matching one effective filter."""

    total_transactions: int = 0
    gross_total: Decimal = Decimal("0")
    net_total: Decimal = Decimal("0")


class TransactionPage(BaseModel):
    """One page of filtered records plus totals computed on the same filter."""

    items: list[TransactionResponse] = Field(default_factory=list)
    total_count: int = 0
    page: int = 1
    page_size: int = 50
    summary: TransactionSummary = Field(default_factory=TransactionSummary)
    refined: bool = Field(
        False,
        description="True when time-of-day refinement was applied client-side",
    )
    truncated: bool = Field(
        False,
        description="True when the refinement fetch stopped at refinement_max_rows",
    )
    diagnostics: list[str] = Field(default_factory=list)
    error: Optional[str] = None


class SummaryResponse(BaseModel):
    """Aggregates for one filter, with the same refinement flags as a page."""

    summary: TransactionSummary = Field(default_factory=TransactionSummary)
    refined: bool = False
    truncated: bool = False
    diagnostics: list[str] = Field(default_factory=list)
    error: Optional[str] = None
