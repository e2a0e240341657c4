"""Import endpoints.

Parse previews, synchronous and background imports of acquirer export
files, import history, and the per-import CSV export.
"""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Header,
    HTTPException,
    Query,
    UploadFile,
)
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.logging import get_logger
from app.schemas.import_record import (
    ImportJobResponse,
    ImportOutcome,
    ImportResponse,
    PreviewResponse,
)
from app.services.export.csv_exporter import to_csv_bytes, transactions_to_csv
from app.services.ingestion.batch_persistence import ImportSession
from app.services.ingestion.csv_parser import ParseResult, RecordParser
from app.services.ingestion.import_service import ImportService
from app.services.query.filter_builder import FilterQueryBuilder
from app.services.store.sql_store import SqlTransactionStore

logger = get_logger(__name__)

router = APIRouter()

PREVIEW_ROWS = 5


async def _read_and_parse(file: UploadFile, user_id: Optional[str] = None) -> tuple[str, ParseResult]:
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")

    filename = file.filename or "upload.csv"
    logger.info("Received upload: file=%s size=%d", filename, len(content))
    return filename, RecordParser().parse_bytes(content, filename, user_id=user_id)


def _require_records(filename: str, parsed: ParseResult) -> None:
    """Block the import when parsing produced nothing to persist."""
    if not parsed.records:
        logger.warning("No valid records in %s, import blocked", filename)
        raise HTTPException(
            status_code=400,
            detail={
                "message": f"No valid records found in {filename}",
                "diagnostics": parsed.display_diagnostics(),
            },
        )


def _job_response(job_id: str, session: ImportSession) -> ImportJobResponse:
    return ImportJobResponse(
        job_id=job_id,
        filename=session.filename,
        is_importing=session.is_importing,
        cancel_requested=session.cancel_requested,
        progress=session.progress,
        status=session.status,
        import_id=session.import_id,
        result=session.result,
        error=session.error,
    )


@router.post("/preview", response_model=PreviewResponse)
async def preview_import(file: UploadFile = File(...)) -> PreviewResponse:
    """Parse a file without persisting anything.

    Returns the row counts, the diagnostics capped for display and the
    first few parsed records.
    """
    filename, parsed = await _read_and_parse(file)
    return PreviewResponse(
        filename=filename,
        total_rows=parsed.total_rows,
        valid_records=len(parsed.records),
        rejected_rows=parsed.rejected_rows,
        diagnostics=parsed.display_diagnostics(),
        preview=[r.model_dump(mode="json") for r in parsed.records[:PREVIEW_ROWS]],
    )


@router.post("/upload", response_model=ImportOutcome)
async def upload_import(
    file: UploadFile = File(...),
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> ImportOutcome:
    """Parse and persist an export file in one request.

    Duplicates (same transaction id and acquirer transaction id) are
    counted and ignored; row-level failures never abort the import.
    """
    filename, parsed = await _read_and_parse(file, user_id=x_user_id)
    _require_records(filename, parsed)

    outcome = ImportService(SqlTransactionStore(db)).run_import(
        filename,
        parsed.records,
        user_id=x_user_id,
        user_email=x_user_email,
    )
    if outcome.import_id is None:
        raise HTTPException(status_code=502, detail=outcome.error)
    return outcome


# ── Background import jobs ───────────────────────────────────────────


@router.post("/jobs", response_model=ImportJobResponse, status_code=202)
async def submit_import(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    x_user_id: Optional[str] = Header(None),
) -> ImportJobResponse:
    """Parse now, persist as a background job.

    Returns immediately with a job_id that can be polled via GET /jobs/{id}.
    """
    from app.core.database import SessionLocal
    from app.services.ingestion.import_jobs import get_job, submit_import_job

    filename, parsed = await _read_and_parse(file, user_id=x_user_id)
    _require_records(filename, parsed)

    job_id = submit_import_job(
        db_factory=SessionLocal,
        filename=filename,
        records=parsed.records,
        user_id=x_user_id,
        background_tasks=background_tasks,
    )
    return _job_response(job_id, get_job(job_id))


@router.get("/jobs", response_model=List[ImportJobResponse])
def list_import_jobs() -> List[ImportJobResponse]:
    """List all submitted import jobs."""
    from app.services.ingestion.import_jobs import list_jobs

    return [_job_response(job_id, session) for job_id, session in list_jobs().items()]


@router.get("/jobs/{job_id}", response_model=ImportJobResponse)
def get_import_job(job_id: str) -> ImportJobResponse:
    """Poll a specific job's progress by its ID."""
    from app.services.ingestion.import_jobs import get_job

    session = get_job(job_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return _job_response(job_id, session)


@router.post("/jobs/{job_id}/cancel", response_model=ImportJobResponse)
def cancel_import_job(job_id: str) -> ImportJobResponse:
    """Ask a running job to stop after its current batch."""
    from app.services.ingestion.import_jobs import cancel_job

    session = cancel_job(job_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return _job_response(job_id, session)


# ── History and export ───────────────────────────────────────────────


@router.get("", response_model=List[ImportResponse])
def list_imports(
    limit: int = Query(settings.history_limit, ge=1, le=200, description="Max records"),
    db: Session = Depends(get_db),
) -> list:
    """Import history, newest first."""
    result = SqlTransactionStore(db).list_imports(limit=limit)
    if result.error is not None:
        raise HTTPException(status_code=502, detail=result.error.message)
    return result.rows


@router.get("/{import_id}/export")
def export_import(import_id: UUID, db: Session = Depends(get_db)) -> Response:
    """Download every record of one import as an acquirer-layout CSV."""
    page = FilterQueryBuilder(SqlTransactionStore(db)).get_all_transactions(
        import_id=import_id
    )
    if page.error is not None:
        raise HTTPException(status_code=502, detail=page.error)
    if not page.items:
        raise HTTPException(status_code=404, detail="No transactions for this import")

    return Response(
        content=to_csv_bytes(transactions_to_csv(page.items)),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f'attachment; filename="import_{import_id}.csv"'
        },
    )
