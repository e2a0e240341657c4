"""Acquirer export (semicolon CSV) parser.

Turns the raw text of an acquirer export into ``TransactionCreate``
records plus a list of human-readable diagnostics. Parsing never raises:
bad fields degrade to defaults, the only row that is rejected is one
with neither a transaction id nor an establishment, and file-level
problems are reported as a single diagnostic.
"""

from __future__ import annotations

import csv
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from decimal import Decimal
from typing import Callable, List, Optional
from uuid import UUID

from app.core.config import settings
from app.core.errors import CsvFormatError
from app.core.logging import get_logger
from app.schemas.transaction import Modality, TransactionCreate
from app.services.ingestion.layout import (
    COLUMN_ALIASES,
    NOT_INFORMED,
    REQUIRED_COLUMNS,
    normalize_header,
)
from app.services.ingestion.locale_codecs import (
    decode_currency,
    decode_modality,
    local_tz,
    parse_datetime,
)

logger = get_logger(__name__)

_DIGITS = re.compile(r"\d+")

Row = dict[str, str]


@dataclass
class ParseResult:
    """Outcome of parsing one export file.

    Attributes:
        records: Every row that produced a record, in file order.
        diagnostics: Every problem found (file-level and per-row), uncapped.
        total_rows: Number of non-empty data rows seen.
        rejected_rows: Rows that produced no record.
    """

    records: List[TransactionCreate] = field(default_factory=list)
    diagnostics: List[str] = field(default_factory=list)
    total_rows: int = 0
    rejected_rows: int = 0

    def display_diagnostics(self, limit: Optional[int] = None) -> List[str]:
        """First *limit* diagnostics verbatim, the rest summarized by count."""
        limit = settings.diagnostics_display_limit if limit is None else limit
        if len(self.diagnostics) <= limit:
            return list(self.diagnostics)
        hidden = len(self.diagnostics) - limit
        return self.diagnostics[:limit] + [
            f"... and {hidden} more diagnostic(s) "
            f"(total: {self.rejected_rows} rejected row(s), "
            f"{len(self.records)} valid record(s))"
        ]


class RecordParser:
    """Parser for semicolon-delimited acquirer exports.

    Expected header (Portuguese, case and spacing are normalized)::

        DATA EXPORTACÃO;DATA DA TRANSAÇÃO;...;ID DA TRANSAÇÃO;...;
        MODALIDADE;...;VALOR BRUTO;VALOR LÍQUIDO;ADQUIRENTE;...

    Only ``REQUIRED_COLUMNS`` are checked; a missing column is reported
    once and treated as empty for every row.
    """

    def __init__(
        self,
        tz: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.tz = tz or local_tz()
        self._clock = clock or (lambda: datetime.now(self.tz))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse_bytes(
        self,
        content: bytes,
        filename: str = "upload.csv",
        user_id: Optional[str] = None,
        import_id: Optional[UUID] = None,
    ) -> ParseResult:
        """Decode uploaded bytes (BOM tolerated) and parse them."""
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            logger.error("Failed to decode %s as UTF-8: %s", filename, exc)
            return ParseResult(diagnostics=[f"File is not valid UTF-8: {exc}"])
        return self.parse(text, filename, user_id, import_id)

    def parse(
        self,
        text: str,
        filename: str = "upload.csv",
        user_id: Optional[str] = None,
        import_id: Optional[UUID] = None,
    ) -> ParseResult:
        """Parse the full text of an export into records and diagnostics."""
        result = ParseResult()

        try:
            headers, rows = self.split_rows(text)
        except CsvFormatError as exc:
            logger.warning("Rejecting %s: %s", filename, exc)
            result.diagnostics.append(str(exc))
            return result

        if not rows:
            result.diagnostics.append("No data rows found in the file")
            return result

        missing = self.validate_headers(headers)
        if missing:
            # Keep going: rows are still mapped with the columns we do have
            result.diagnostics.append(f"Missing columns: {', '.join(missing)}")
            logger.warning(
                "%s is missing columns %s; available: %s", filename, missing, headers
            )

        result.total_rows = len(rows)
        for row_num, row in rows:
            try:
                record, diagnostics = self.row_to_record(
                    row, row_num, user_id, import_id
                )
            except Exception as exc:
                logger.warning("Skipping row %d in %s: %s", row_num, filename, exc)
                record, diagnostics = None, [f"Row {row_num}: could not be processed ({exc})"]

            result.diagnostics.extend(diagnostics)
            if record is None:
                result.rejected_rows += 1
            else:
                result.records.append(record)

        logger.info(
            "CSV parse complete for %s: %d records, %d rejected, %d diagnostics",
            filename,
            len(result.records),
            result.rejected_rows,
            len(result.diagnostics),
        )
        return result

    @staticmethod
    def split_rows(text: str) -> tuple[List[str], List[tuple[int, Row]]]:
        """Split export text into normalized headers and numbered row dicts.

        Row numbers count non-blank lines, the header being line 1.

        Raises:
            CsvFormatError: If there is no header plus at least one line.
        """
        normalized = text.replace("\r\n", "\n").replace("\r", "\n")
        normalized = normalized.lstrip("\ufeff")
        lines = [line for line in normalized.split("\n") if line.strip()]

        if len(lines) < 2:
            raise CsvFormatError(
                "CSV must have a header and at least one data row"
            )

        headers = [normalize_header(h) for h in _split_line(lines[0])]

        rows: List[tuple[int, Row]] = []
        for line_num, line in enumerate(lines[1:], start=2):
            values = _split_line(line.strip(), len(headers))
            row = {
                header: (values[idx].strip() if idx < len(values) else "")
                for idx, header in enumerate(headers)
            }
            if any(row.values()):
                rows.append((line_num, row))
        return headers, rows

    @staticmethod
    def validate_headers(headers: List[str]) -> List[str]:
        """Return the required columns absent from *headers*."""
        present = {normalize_header(h) for h in headers}
        return [col for col in REQUIRED_COLUMNS if normalize_header(col) not in present]

    def row_to_record(
        self,
        row: Row,
        row_num: int,
        user_id: Optional[str] = None,
        import_id: Optional[UUID] = None,
    ) -> tuple[Optional[TransactionCreate], List[str]]:
        """Convert one row dict to a record.

        Returns:
            ``(record, diagnostics)``; ``record`` is None only when both
            the transaction id and the establishment are empty.
        """
        diagnostics: List[str] = []

        # --- identity: the only hard gate ------------------------------------
        transaction_id = _get(row, "ID DA TRANSAÇÃO")
        establishment = _get(row, "ESTABELECIMENTO")
        if not transaction_id and not establishment:
            logger.warning(
                "Row %d: missing both transaction id and establishment, skipping",
                row_num,
            )
            return None, [
                f"Row {row_num}: missing both transaction id and establishment"
            ]

        if not transaction_id:
            transaction_id = _synthetic_id()
            logger.debug("Row %d: generated transaction id %s", row_num, transaction_id)

        # --- timestamps -------------------------------------------------------
        now = self._clock()
        export_ts = parse_datetime(_get(row, "DATA EXPORTACÃO"), self.tz)
        raw_txn_date = _get(row, "DATA DA TRANSAÇÃO")
        transaction_ts = parse_datetime(raw_txn_date, self.tz) or export_ts
        if transaction_ts is None:
            transaction_ts = now
            diagnostics.append(
                f"Row {row_num}: invalid transaction date {raw_txn_date!r}, "
                "using current time"
            )
            logger.warning(
                "Row %d: invalid transaction date %r, using current time",
                row_num,
                raw_txn_date,
            )
        raw_chargeback = _get(row, "DATA DO ESTORNO")
        chargeback_ts = parse_datetime(raw_chargeback, self.tz) if raw_chargeback else None

        # --- amounts ----------------------------------------------------------
        gross_amount = self._amount(row, "VALOR BRUTO", row_num)
        net_amount = self._amount(row, "VALOR LÍQUIDO", row_num)
        original_amount, _ = decode_currency(
            _get(row, "VALOR ORIGINAL") or _get(row, "VALOR BRUTO") or "0"
        )

        # --- modality ---------------------------------------------------------
        modality, _ = decode_modality(_get(row, "MODALIDADE"))
        if not Modality.is_known(modality):
            logger.warning("Row %d: unrecognized modality %r kept as-is", row_num, modality)

        return (
            TransactionCreate(
                user_id=user_id,
                import_id=import_id,
                export_timestamp=export_ts or now,
                transaction_timestamp=transaction_ts,
                chargeback_timestamp=chargeback_ts,
                transaction_id=transaction_id,
                acquirer_transaction_id=(
                    _get(row, "ID DA TRANSAÇÃO NA ADQUIRENTE") or transaction_id
                ),
                establishment_name=establishment or NOT_INFORMED,
                establishment_tax_id=_get(row, "CPF/CNPJ ESTABELECIMENTO"),
                establishment_mcc=_get(row, "MCC DO ESTABELECIMENTO") or None,
                accreditor=_get(row, "CREDENCIADORA"),
                accreditor_tax_id=_get(row, "CPF/CNPJ CREDENCIADORA"),
                representative=_get(row, "REPRESENTANTE") or None,
                representative_tax_id=_get(row, "CPF/CNPJ REPRESENTANTE") or None,
                cardholder=_get(row, "PORTADOR") or None,
                card_number=_get(row, "CARTÃO") or None,
                customer=_get(row, "CLIENTE") or None,
                modality=modality,
                installments=_installments(_get(row, "PARCELAS")),
                card_brand=_get(row, "BANDEIRA") or None,
                equipment_serial=_get(row, "SERIAL DO EQUIPAMENTO") or None,
                equipment_id_number=(
                    _get(row, "NÚMERO DE IDENTIFICAÇÃO DO EQUIPAMENTO") or None
                ),
                equipment_model=_get(row, "MODELO DO EQUIPAMENTO") or None,
                gross_amount=gross_amount,
                net_amount=net_amount,
                original_amount=original_amount,
                acquirer_name=_get(row, "ADQUIRENTE") or NOT_INFORMED,
                channel=_get(row, "CANAL"),
                status=_get(row, "STATUS"),
                failure_reason=_get(row, "MOTIVO DE FALHA") or None,
                plan=_get(row, "PLANO") or None,
                nsu=_get(row, "NSU") or None,
                split=_get(row, "SPLIT"),
                parent_transaction=_get(row, "TRANSAÇÃO PRINCIPAL"),
            ),
            diagnostics,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _amount(row: Row, column: str, row_num: int) -> Decimal:
        raw = _get(row, column) or "0"
        value, defaulted = decode_currency(raw)
        if defaulted and raw.strip() not in ("", "0"):
            logger.warning("Row %d: non-numeric %s=%r, using 0", row_num, column, raw)
        return value


def _split_line(line: str, expected: Optional[int] = None) -> List[str]:
    """Split one line on ';', honouring double-quoted fields.

    A stray quote can make the csv module swallow the delimiters after it;
    when that leaves fewer than *expected* fields and a plain split does
    not, the plain split wins.
    """
    try:
        values = next(csv.reader([line], delimiter=";", strict=True), [])
    except csv.Error:
        return line.split(";")
    if expected is not None and len(values) < expected <= line.count(";") + 1:
        return line.split(";")
    return values


def _get(row: Row, column: str) -> str:
    """Value of *column* (or one of its aliases) in a normalized row, or ''."""
    for name in [column, *COLUMN_ALIASES.get(column, [])]:
        value = row.get(normalize_header(name))
        if value:
            return value.strip()
    return ""


def _installments(raw: str) -> Optional[int]:
    """First integer found in the installments text; 0 or none -> None."""
    match = _DIGITS.search(raw) if raw else None
    if match is None:
        return None
    return int(match.group(0)) or None


def _synthetic_id() -> str:
    """Unique id for rows that arrive without a transaction id."""
    return f"generated_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
