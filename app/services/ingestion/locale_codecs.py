"""Brazilian locale codecs for acquirer export files.

Exports carry dates as ``DD/MM/YYYY HH:mm:ss`` (often with irregular
padding between the date and time tokens) and money as ``" 1.234,56"``.
These functions turn that text into ``datetime``/``Decimal`` values and
back. Decoding is lenient: a malformed value degrades to a default and
the ``decode_*`` variants report that through a ``was_defaulted`` flag.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone, tzinfo
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.core.logging import get_logger
from app.schemas.transaction import Modality

logger = get_logger(__name__)

# Whitespace (incl. NBSP) and the currency glyphs that show up in exports
_CURRENCY_NOISE = re.compile(r"[\sÅR$]")

_CENTS = Decimal("0.01")

# Brazilian formats, ordered from most specific to least
_DATE_FORMATS: list[str] = [
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
]

_DEFAULT_MODALITY = Modality.PIX.value


def local_tz() -> tzinfo:
    """Timezone in which export files and calendar filters are expressed."""
    return ZoneInfo(settings.local_timezone)


# ------------------------------------------------------------------
# Currency
# ------------------------------------------------------------------


def decode_currency(text: Optional[str]) -> tuple[Decimal, bool]:
    """Parse a Brazilian currency string.

    Args:
        text: Raw value such as ``" 1.234,56"`` or ``"R$ 49,00"``.

    Returns:
        ``(value, was_defaulted)``. Empty or unparsable input yields
        ``(Decimal("0"), True)``.
    """
    if text is None or not text.strip():
        return Decimal("0"), True

    cleaned = _CURRENCY_NOISE.sub("", text.strip())
    cleaned = cleaned.replace(".", "").replace(",", ".", 1)
    try:
        value = Decimal(cleaned)
        if not value.is_finite():
            return Decimal("0"), True
        # Raises for values with more digits than the context precision
        return value.quantize(_CENTS, rounding=ROUND_HALF_UP), False
    except (InvalidOperation, ValueError):
        logger.debug("Could not parse currency value: %r", text)
        return Decimal("0"), True


def parse_currency(text: Optional[str]) -> Decimal:
    """Parse a Brazilian currency string, returning 0 when malformed."""
    value, _ = decode_currency(text)
    return value


def format_currency_number(value: Decimal) -> str:
    """Format a value as ``1.234,56`` (no currency symbol)."""
    quantized = Decimal(value).quantize(_CENTS, rounding=ROUND_HALF_UP)
    grouped = f"{abs(quantized):,.2f}"
    swapped = grouped.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"-{swapped}" if quantized < 0 else swapped


def format_currency(value: Decimal) -> str:
    """Format a value as ``R$ 1.234,56``."""
    return f"R$ {format_currency_number(value)}"


# ------------------------------------------------------------------
# Dates
# ------------------------------------------------------------------


def parse_datetime(text: Optional[str], tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Try the Brazilian formats, then ISO-8601, and return an aware datetime.

    Args:
        text: Raw date text from the export.
        tz: Timezone for values without an offset; defaults to
            ``settings.local_timezone``.

    Returns:
        Parsed timezone-aware datetime, or None if every format fails.
    """
    if text is None or not text.strip():
        return None

    cleaned = " ".join(text.split())
    zone = tz or local_tz()

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt).replace(tzinfo=zone)
        except ValueError:
            continue

    # fromisoformat accepts a trailing Z only from Python 3.11
    if cleaned[-1] in "Zz":
        cleaned = f"{cleaned[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(cleaned)
    except ValueError:
        logger.debug("Could not parse date: %r", text)
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=zone)
    return parsed


def decode_datetime(
    text: Optional[str],
    default: datetime,
    tz: Optional[tzinfo] = None,
) -> tuple[datetime, bool]:
    """Like ``parse_datetime`` but falls back to *default*.

    Returns:
        ``(value, was_defaulted)``.
    """
    parsed = parse_datetime(text, tz)
    if parsed is None:
        return default, True
    return parsed, False


def to_local(value: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Convert an instant to local wall-clock time (naive values are UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz or local_tz())


def format_date_only(value: datetime, tz: Optional[tzinfo] = None) -> str:
    return to_local(value, tz).strftime("%d/%m/%Y")


def format_time(value: datetime, tz: Optional[tzinfo] = None) -> str:
    return to_local(value, tz).strftime("%H:%M:%S")


def format_datetime(value: Optional[datetime], tz: Optional[tzinfo] = None) -> str:
    """Format an instant as ``dd/mm/YYYY HH:MM:SS`` local time; '' for None."""
    if value is None:
        return ""
    return f"{format_date_only(value, tz)} {format_time(value, tz)}"


# ------------------------------------------------------------------
# Modality
# ------------------------------------------------------------------


def decode_modality(text: Optional[str]) -> tuple[str, bool]:
    """Uppercase and trim a modality; empty input becomes PIX.

    Unrecognized values are returned unchanged (after case folding) so
    that real-world exports are never rejected for a new payment class.

    Returns:
        ``(modality, was_defaulted)``.
    """
    if text is None or not text.strip():
        return _DEFAULT_MODALITY, True
    return text.strip().upper(), False
