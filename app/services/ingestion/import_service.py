"""Import orchestration: from parsed records to a finished import record.

One run:
  1. Open an import record (status=pending, rows_imported=0).
  2. Tag every record with the new import id.
  3. Hand the records to the batch persistence engine.
  4. Derive the terminal status from the classification counts.
  5. Store rows_imported + status on the import record.
"""

from __future__ import annotations

from typing import List, Optional

from app.core.logging import get_logger
from app.schemas.import_record import (
    BatchResult,
    ImportCreate,
    ImportOutcome,
    ImportStatus,
)
from app.schemas.transaction import TransactionCreate
from app.services.ingestion.batch_persistence import (
    BatchPersistenceEngine,
    ImportSession,
    ProgressCallback,
)
from app.services.store.base import TransactionStore

logger = get_logger(__name__)


def derive_import_status(result: BatchResult) -> ImportStatus:
    """Map batch counts to the terminal status of an import.

    Zero rows inserted without errors (an empty run, or every record was a
    duplicate) is reported as ``empty`` rather than ``success``.
    """
    if result.errors > 0:
        return ImportStatus.PARTIAL if result.inserted > 0 else ImportStatus.ERROR
    if result.inserted == 0:
        return ImportStatus.EMPTY
    if result.duplicates > 0 or result.skipped > 0:
        return ImportStatus.PARTIAL
    return ImportStatus.SUCCESS


def outcome_message(result: BatchResult) -> str:
    message = (
        f"{result.inserted} transaction(s) inserted, "
        f"{result.duplicates} duplicate(s) ignored, "
        f"{result.errors} error(s)"
    )
    if result.skipped:
        message += f", {result.skipped} skipped after cancellation"
    return message


class ImportService:
    """Runs one import against a store."""

    def __init__(
        self,
        store: TransactionStore,
        engine: Optional[BatchPersistenceEngine] = None,
    ) -> None:
        self.store = store
        self.engine = engine or BatchPersistenceEngine(store)

    def run_import(
        self,
        filename: str,
        records: List[TransactionCreate],
        user_id: Optional[str] = None,
        user_email: Optional[str] = None,
        session: Optional[ImportSession] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> ImportOutcome:
        """Persist *records* as one import of *filename*.

        Never raises: a failure to open or close the import record is
        reported through ``ImportOutcome.error``.
        """
        session = session or ImportSession(filename=filename)

        created = self.store.create_import(
            ImportCreate(filename=filename, user_id=user_id, user_email=user_email)
        )
        if created.error is not None or created.data is None:
            message = created.error.message if created.error else "no data returned"
            logger.error("Could not create import record for %s: %s", filename, message)
            session.is_importing = False
            session.status = ImportStatus.ERROR.value
            session.error = f"Could not create import record: {message}"
            return ImportOutcome(
                filename=filename,
                status=ImportStatus.ERROR,
                error=session.error,
                message=session.error,
            )

        import_id = created.data.id
        session.import_id = str(import_id)
        logger.info(
            "Import started: id=%s file=%s records=%d", import_id, filename, len(records)
        )

        tagged = [
            record.model_copy(
                update={"import_id": import_id, "user_id": user_id or record.user_id}
            )
            for record in records
        ]
        result = self.engine.insert_transactions(tagged, progress=progress, session=session)
        status = derive_import_status(result)

        updated = self.store.update_import_status(import_id, result.inserted, status)
        error: Optional[str] = None
        if updated.error is not None:
            error = f"Could not update import record: {updated.error.message}"
            logger.error("Import %s finished but status update failed: %s", import_id, error)

        session.status = status.value
        session.result = result
        session.error = error
        logger.info(
            "Import finished: id=%s status=%s inserted=%d duplicates=%d errors=%d",
            import_id,
            status.value,
            result.inserted,
            result.duplicates,
            result.errors,
        )

        return ImportOutcome(
            import_id=import_id,
            filename=filename,
            status=status,
            result=result,
            message=outcome_message(result),
            error=error,
        )
