"""Background import job management.

Allows submitting an import as a background task and polling its
progress. Each job owns an ``ImportSession``; the registry is an
in-memory dict keyed by job id, so jobs do not survive a restart.
"""

from __future__ import annotations

import uuid
from typing import Callable, List, Optional

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.schemas.import_record import ImportStatus
from app.schemas.transaction import TransactionCreate
from app.services.ingestion.batch_persistence import ImportSession
from app.services.ingestion.import_service import ImportService
from app.services.store.sql_store import SqlTransactionStore

logger = get_logger(__name__)

# In-memory job tracker
_jobs: dict[str, ImportSession] = {}


def submit_import_job(
    db_factory: Callable[[], Session],
    filename: str,
    records: List[TransactionCreate],
    user_id: Optional[str],
    background_tasks: BackgroundTasks,
) -> str:
    """Register an import session and schedule the run in background.

    Returns job_id immediately so the caller can poll for progress.
    """
    job_id = str(uuid.uuid4())
    _jobs[job_id] = ImportSession(filename=filename)
    background_tasks.add_task(_run_job, job_id, db_factory, filename, records, user_id)
    return job_id


def _run_job(
    job_id: str,
    db_factory: Callable[[], Session],
    filename: str,
    records: List[TransactionCreate],
    user_id: Optional[str],
) -> None:
    """Background task that runs one full import."""
    session = _jobs[job_id]
    if session.cancel_requested:
        session.is_importing = False
        session.status = "cancelled"
        logger.info("Import job %s cancelled before start", job_id)
        return

    session.status = "running"
    try:
        db: Session = db_factory()
        try:
            service = ImportService(SqlTransactionStore(db))
            service.run_import(filename, records, user_id=user_id, session=session)
        finally:
            db.close()
    except Exception as e:
        logger.exception("Import job %s failed", job_id)
        session.status = ImportStatus.ERROR.value
        session.error = str(e)
        session.is_importing = False


def get_job(job_id: str) -> Optional[ImportSession]:
    """Look up a job by ID. Returns None if not found."""
    return _jobs.get(job_id)


def list_jobs() -> dict[str, ImportSession]:
    """Return all tracked jobs keyed by job id (insertion order)."""
    return dict(_jobs)


def cancel_job(job_id: str) -> Optional[ImportSession]:
    """Ask a job to stop between batches. Returns None if not found."""
    session = _jobs.get(job_id)
    if session is not None and session.is_importing:
        session.cancel()
        logger.info("Cancellation requested for import job %s", job_id)
    return session
