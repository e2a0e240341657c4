"""CSV export of transaction records in the acquirer layout.

Produces the same 32 columns the record parser reads, so an exported file
can be imported again: header unquoted, every data cell quoted, dates in
``dd/mm/YYYY HH:MM:SS`` local time and amounts as ``1.234,56``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable

from app.core.logging import get_logger
from app.services.ingestion.layout import EXPORT_COLUMNS, EXPORT_HEADERS
from app.services.ingestion.locale_codecs import format_currency_number, format_datetime

logger = get_logger(__name__)

DELIMITER = ";"
BOM = "\ufeff"


def _quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, datetime):
        return format_datetime(value)
    if isinstance(value, Decimal):
        return format_currency_number(value)
    return str(value)


def transactions_to_csv(records: Iterable[Any]) -> str:
    """Render records (ORM rows or schemas) as a ``;``-delimited export.

    Returns an empty string when there is nothing to export.
    """
    lines: list[str] = []
    for record in records:
        lines.append(
            DELIMITER.join(
                _quote(_cell(getattr(record, field, None))) for _, field in EXPORT_COLUMNS
            )
        )

    if not lines:
        return ""

    logger.info("Exported %d transaction(s) to CSV", len(lines))
    return "\n".join([DELIMITER.join(EXPORT_HEADERS), *lines])


def to_csv_bytes(text: str) -> bytes:
    """Encode an export with a leading BOM so spreadsheet tools pick UTF-8."""
    return (BOM + text).encode("utf-8")
