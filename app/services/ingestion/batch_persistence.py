"""Batch persistence engine: writes parsed records and classifies every one.

Records are written in fixed-size batches, strictly one after another.
A batch that fails as a whole is replayed record by record, which is what
tells a duplicate (unique-key violation) apart from a real error. No
single record can abort the run: every record ends up counted exactly
once as inserted, duplicate, error or (after cancellation) skipped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional

from app.core.config import settings
from app.core.logging import get_logger
from app.schemas.import_record import BatchResult
from app.schemas.transaction import TransactionCreate
from app.services.store.base import TransactionStore

logger = get_logger(__name__)

ProgressCallback = Callable[[float], None]

# Progress reserved for the import record the caller created before the run
PROGRESS_START = 5.0
PROGRESS_BATCH_CEILING = 95.0
PROGRESS_DONE = 100.0


@dataclass
class ImportSession:
    """Caller-owned handle for one running import.

    The engine only reads ``cancel_requested`` (between batches) and
    writes ``progress`` and ``is_importing``; everything else belongs to
    whoever drives the import.
    """

    filename: str = ""
    is_importing: bool = True
    cancel_requested: bool = False
    progress: float = 0.0
    status: str = "pending"
    import_id: Optional[str] = None
    result: Optional[BatchResult] = None
    error: Optional[str] = None

    def cancel(self) -> None:
        self.cancel_requested = True


class BatchPersistenceEngine:
    """Persists records through a ``TransactionStore`` in sequential batches."""

    def __init__(
        self,
        store: TransactionStore,
        batch_size: Optional[int] = None,
    ) -> None:
        self.store = store
        self.batch_size = batch_size or settings.insert_batch_size

    # ── Public API ───────────────────────────────────────────────────

    def insert_transactions(
        self,
        records: List[TransactionCreate],
        progress: Optional[ProgressCallback] = None,
        session: Optional[ImportSession] = None,
    ) -> BatchResult:
        """Insert every record and return the classification counts.

        Args:
            records: Records already tagged with their ``import_id``.
            progress: Optional callback receiving 0..100; calls are
                non-decreasing and the last one is always 100.
            session: Optional import session, consulted for cancellation
                between batches and updated with progress.

        Returns:
            ``BatchResult`` where inserted + duplicates + errors + skipped
            equals ``len(records)``.
        """
        result = BatchResult()
        reporter = _ProgressReporter(progress, session)
        batches = [
            records[i : i + self.batch_size]
            for i in range(0, len(records), self.batch_size)
        ]
        total_batches = len(batches)

        reporter.emit(PROGRESS_START)

        try:
            for number, batch in enumerate(batches, start=1):
                if session is not None and session.cancel_requested:
                    remaining = sum(len(b) for b in batches[number - 1 :])
                    result.skipped += remaining
                    logger.warning(
                        "Import cancelled before batch %d/%d: %d record(s) skipped",
                        number,
                        total_batches,
                        remaining,
                    )
                    break

                self._insert_batch(batch, number, total_batches, result)
                reporter.emit(
                    min(
                        PROGRESS_START + (number / total_batches) * 90,
                        PROGRESS_BATCH_CEILING,
                    )
                )
        finally:
            reporter.emit(PROGRESS_DONE)
            if session is not None:
                session.is_importing = False

        logger.info(
            "Batch run complete: records=%d inserted=%d duplicates=%d errors=%d skipped=%d",
            len(records),
            result.inserted,
            result.duplicates,
            result.errors,
            result.skipped,
        )
        return result

    # ── Private helpers ──────────────────────────────────────────────

    def _insert_batch(
        self,
        batch: List[TransactionCreate],
        number: int,
        total_batches: int,
        result: BatchResult,
    ) -> None:
        """Bulk insert one batch, replaying it record by record on failure."""
        classified = 0
        try:
            outcome = self.store.insert_many(batch)
            if outcome.error is None:
                # The store may keep fewer rows than submitted
                result.inserted += len(outcome.inserted)
                classified = len(batch)
                if len(outcome.inserted) < len(batch):
                    result.duplicates += len(batch) - len(outcome.inserted)
                logger.debug(
                    "Batch %d/%d inserted: %d record(s)",
                    number,
                    total_batches,
                    len(outcome.inserted),
                )
                return

            logger.warning(
                "Batch %d/%d failed (code=%s): %s; retrying record by record",
                number,
                total_batches,
                outcome.error.code,
                outcome.error.message,
            )
            for record in batch:
                self._insert_single(record, result)
                classified += 1
        except Exception:
            unclassified = len(batch) - classified
            result.errors += unclassified
            logger.exception(
                "Unexpected failure in batch %d/%d: %d record(s) counted as errors",
                number,
                total_batches,
                unclassified,
            )

    def _insert_single(self, record: TransactionCreate, result: BatchResult) -> None:
        outcome = self.store.insert_one(record)
        if outcome.error is not None:
            if outcome.error.is_unique_violation:
                result.duplicates += 1
            else:
                result.errors += 1
                logger.error(
                    "Failed to insert transaction %s: %s",
                    record.transaction_id,
                    outcome.error.message,
                )
        elif outcome.data is not None:
            result.inserted += 1
        else:
            # Neither data nor error: the store skipped the row silently
            result.duplicates += 1


class _ProgressReporter:
    """Forwards non-decreasing progress values to the callback and session."""

    def __init__(
        self,
        callback: Optional[ProgressCallback],
        session: Optional[ImportSession],
    ) -> None:
        self.callback = callback
        self.session = session
        self.last = 0.0

    def emit(self, value: float) -> None:
        value = max(value, self.last)
        self.last = value
        if self.session is not None:
            self.session.progress = value
        if self.callback is None:
            return
        try:
            self.callback(value)
        except Exception:
            # A broken consumer must not stall or abort the run
            logger.exception("Progress callback failed at %.1f%%", value)
