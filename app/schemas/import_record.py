"""Pydantic schemas for import records, parse previews and batch outcomes."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ImportStatus(str, Enum):
    """Lifecycle of an import record."""

    PENDING = "pending"
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"
    EMPTY = "empty"


class ImportCreate(BaseModel):
    """Fields needed to open a new import record."""

    filename: str = Field(..., min_length=1, max_length=255)
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    rows_imported: int = 0
    status: ImportStatus = ImportStatus.PENDING


class ImportResponse(BaseModel):
    """Schema returned when reading an import record."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    filename: str
    rows_imported: int
    status: str
    imported_at: Optional[datetime] = None
    user_id: Optional[str] = None
    user_email: Optional[str] = None


class BatchResult(BaseModel):
    """Classification of every record handed to the persistence engine."""

    inserted: int = 0
    duplicates: int = 0
    errors: int = 0
    skipped: int = Field(
        0,
        description="Records never dispatched because the import was cancelled",
    )

    @property
    def total(self) -> int:
        return self.inserted + self.duplicates + self.errors + self.skipped


class ImportOutcome(BaseModel):
    """Result of one full import run (record creation, batches, status update)."""

    import_id: Optional[UUID] = None
    filename: str
    status: ImportStatus
    result: BatchResult = Field(default_factory=BatchResult)
    message: str = ""
    error: Optional[str] = None


class PreviewResponse(BaseModel):
    """Schema returned after parsing a file without persisting it."""

    filename: str
    total_rows: int
    valid_records: int
    rejected_rows: int
    diagnostics: list[str] = Field(
        default_factory=list,
        description="Diagnostics capped for display",
    )
    preview: list[dict[str, Any]] = Field(default_factory=list)


class ImportJobResponse(BaseModel):
    """Snapshot of a background import job."""

    job_id: str
    filename: str
    is_importing: bool
    cancel_requested: bool
    progress: float
    status: str
    import_id: Optional[str] = None
    result: Optional[BatchResult] = None
    error: Optional[str] = None
