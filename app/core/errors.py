"""Exception types raised inside the ingestion and query services.

Public service operations never let these escape: they are caught at the
component boundary and turned into diagnostics or ``error`` fields on the
returned result.
"""


class SettlementError(Exception):
    """Base class for predictable failures in this service."""


class CsvFormatError(SettlementError):
    """The export file cannot be split into a header and data rows."""
