"""Import record model: one file-ingestion attempt and its outcome."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class ImportRecord(Base):
    """Metadata of one uploaded export file.

    Created in ``pending`` status with zero rows before the batch run and
    updated exactly once afterwards with the terminal status.
    """

    __tablename__ = "imports"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    user_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    rows_imported: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="pending | success | partial | error | empty",
    )
    imported_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<ImportRecord(filename={self.filename!r}, "
            f"rows_imported={self.rows_imported}, status={self.status!r})>"
        )
