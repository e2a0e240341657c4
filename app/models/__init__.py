"""SQLAlchemy models for the acquirer settlement dashboard."""

from app.models.import_record import ImportRecord
from app.models.transaction import TransactionRecord

__all__ = [
    "ImportRecord",
    "TransactionRecord",
]
