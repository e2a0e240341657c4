"""Transaction query endpoints.

Filtered listing with pagination, aggregates for the same filter, and a
CSV export of everything that matches.
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.logging import get_logger
from app.schemas.filters import TransactionFilter
from app.schemas.transaction import SummaryResponse, TransactionPage
from app.services.export.csv_exporter import to_csv_bytes, transactions_to_csv
from app.services.query.filter_builder import FilterQueryBuilder
from app.services.store.sql_store import SqlTransactionStore

logger = get_logger(__name__)

router = APIRouter()


def transaction_filter(
    start_date: Optional[date] = Query(None, description="First calendar day (local)"),
    end_date: Optional[date] = Query(None, description="Last calendar day (local)"),
    start_time: Optional[time] = Query(None, description="Time of day >= (HH:MM)"),
    end_time: Optional[time] = Query(None, description="Time of day <= (HH:MM)"),
    acquirer: Optional[List[str]] = Query(None, description="Acquirer name(s)"),
    modality: Optional[List[str]] = Query(None, description="DEBITO, CREDITO, PIX"),
) -> TransactionFilter:
    """Build a ``TransactionFilter`` from query parameters."""
    try:
        return TransactionFilter(
            start_date=start_date,
            end_date=end_date,
            start_time=start_time,
            end_time=end_time,
            acquirers=set(acquirer or []),
            modalities=set(modality or []),
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=exc.errors()[0]["msg"])


@router.get("", response_model=TransactionPage)
def list_transactions(
    flt: TransactionFilter = Depends(transaction_filter),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(
        settings.default_page_size,
        ge=1,
        le=settings.max_page_size,
        description="Items per page",
    ),
    db: Session = Depends(get_db),
) -> TransactionPage:
    """List transactions newest first, with count and totals for the filter."""
    result = FilterQueryBuilder(SqlTransactionStore(db)).get_transactions(
        flt, page=page, page_size=page_size
    )
    if result.error is not None:
        raise HTTPException(status_code=502, detail=result.error)
    return result


@router.get("/summary", response_model=SummaryResponse)
def transaction_summary(
    flt: TransactionFilter = Depends(transaction_filter),
    db: Session = Depends(get_db),
) -> SummaryResponse:
    """Count and gross/net totals for the filter."""
    result = FilterQueryBuilder(SqlTransactionStore(db)).get_summary(flt)
    if result.error is not None:
        raise HTTPException(status_code=502, detail=result.error)
    return result


@router.get("/export")
def export_transactions(
    flt: TransactionFilter = Depends(transaction_filter),
    db: Session = Depends(get_db),
) -> Response:
    """Download every matching transaction as an acquirer-layout CSV."""
    page = FilterQueryBuilder(SqlTransactionStore(db)).get_all_transactions(flt)
    if page.error is not None:
        raise HTTPException(status_code=502, detail=page.error)

    logger.info("Exporting %d transaction(s)", len(page.items))
    filename = f"transacoes_{datetime.now().strftime('%Y-%m-%d')}.csv"
    return Response(
        content=to_csv_bytes(transactions_to_csv(page.items)),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
