"""Filter query builder: turns a ``TransactionFilter`` into store reads.

The store compares absolute instants, so calendar dates are lowered to
local midnight / end of day and converted to UTC before being sent. A
time-of-day window cannot be expressed that way (it applies to every
day in the range), so when one is present the builder fetches the whole
date-filtered set and refines it locally, then recomputes the count,
the page slice and the gross/net sums from the refined rows. Counts,
page contents and sums therefore always describe the same filter.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone, tzinfo
from decimal import Decimal
from typing import Any, List, Optional
from uuid import UUID

from app.core.config import settings
from app.core.logging import get_logger
from app.schemas.filters import TransactionFilter
from app.schemas.transaction import (
    SummaryResponse,
    TransactionPage,
    TransactionResponse,
    TransactionSummary,
)
from app.services.ingestion.locale_codecs import local_tz, to_local
from app.services.store.base import QueryConditions, TransactionStore

logger = get_logger(__name__)

_DAY_START = time(0, 0)
_DAY_END = time(23, 59)
_WHOLE_DAY = (0, 23 * 60 + 59)

_UNSET: Any = object()


@dataclass
class QueryPlan:
    """What to ask the store and what to refine locally.

    Attributes:
        conditions: Server-side conditions (date-derived bounds only).
        time_window: Inclusive minute-of-day interval for client-side
            refinement, or None when the store result is final.
        diagnostics: Parts of the filter that were ignored, and why.
    """

    conditions: QueryConditions
    time_window: Optional[tuple[int, int]] = None
    diagnostics: List[str] = field(default_factory=list)

    @property
    def refine(self) -> bool:
        return self.time_window is not None


@dataclass
class _Collected:
    rows: List[TransactionResponse] = field(default_factory=list)
    truncated: bool = False
    error: Optional[str] = None


class FilterQueryBuilder:
    """Runs filtered transaction reads against a ``TransactionStore``."""

    def __init__(
        self,
        store: TransactionStore,
        tz: Optional[tzinfo] = None,
        chunk_size: Optional[int] = None,
        max_rows: Optional[int] = _UNSET,
    ) -> None:
        self.store = store
        self.tz = tz or local_tz()
        self.chunk_size = chunk_size or settings.refinement_chunk_size
        self.max_rows = settings.refinement_max_rows if max_rows is _UNSET else max_rows

    # ── Planning ─────────────────────────────────────────────────────

    def build_plan(
        self,
        flt: TransactionFilter,
        import_id: Optional[UUID] = None,
    ) -> QueryPlan:
        """Lower a filter to store conditions plus an optional time window."""
        conditions = QueryConditions(
            transaction_time_gte=self._day_bound(flt.start_date, _start=True),
            transaction_time_lte=self._day_bound(flt.end_date, _start=False),
            acquirers=sorted(flt.acquirers),
            modalities=sorted(m.strip().upper() for m in flt.modalities),
            import_id=import_id,
        )
        plan = QueryPlan(conditions=conditions)

        if flt.has_time_bound:
            if not flt.has_date_bound:
                plan.diagnostics.append(
                    "Time-of-day filter ignored: select a start or end date to apply it"
                )
                logger.info("Ignoring time-of-day bounds without a date: %s", flt)
            else:
                start = flt.start_time or _DAY_START
                end = flt.end_time or _DAY_END
                plan.time_window = (_minute_of_day(start), _minute_of_day(end))

        logger.debug(
            "Query plan: gte=%s lte=%s acquirers=%s modalities=%s window=%s",
            conditions.transaction_time_gte,
            conditions.transaction_time_lte,
            conditions.acquirers,
            conditions.modalities,
            plan.time_window,
        )
        return plan

    # ── Public API ───────────────────────────────────────────────────

    def get_transactions(
        self,
        flt: TransactionFilter,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> TransactionPage:
        """One page of matching records, newest first, with count and sums."""
        page = max(page, 1)
        page_size = min(page_size or settings.default_page_size, settings.max_page_size)
        plan = self.build_plan(flt)
        offset = (page - 1) * page_size

        if plan.refine:
            collected = self._collect_refined(plan)
            if collected.error is not None:
                return self._failed_page(page, page_size, plan, collected.error)
            return TransactionPage(
                items=collected.rows[offset : offset + page_size],
                total_count=len(collected.rows),
                page=page,
                page_size=page_size,
                summary=_summarize(collected.rows),
                refined=True,
                truncated=collected.truncated,
                diagnostics=plan.diagnostics,
            )

        result = self.store.query(plan.conditions, True, offset, page_size)
        if result.error is not None:
            return self._failed_page(page, page_size, plan, result.error.message)
        totals = self.store.summarize(plan.conditions)
        if totals.error is not None:
            return self._failed_page(page, page_size, plan, totals.error.message)

        return TransactionPage(
            items=[TransactionResponse.model_validate(row) for row in result.rows],
            total_count=result.count,
            page=page,
            page_size=page_size,
            summary=TransactionSummary(
                total_transactions=totals.count,
                gross_total=totals.gross_total,
                net_total=totals.net_total,
            ),
            diagnostics=plan.diagnostics,
        )

    def get_summary(self, flt: TransactionFilter) -> SummaryResponse:
        """Count and gross/net sums for the effective filter."""
        plan = self.build_plan(flt)

        if plan.refine:
            collected = self._collect_refined(plan)
            if collected.error is not None:
                return SummaryResponse(diagnostics=plan.diagnostics, error=collected.error)
            return SummaryResponse(
                summary=_summarize(collected.rows),
                refined=True,
                truncated=collected.truncated,
                diagnostics=plan.diagnostics,
            )

        totals = self.store.summarize(plan.conditions)
        if totals.error is not None:
            return SummaryResponse(diagnostics=plan.diagnostics, error=totals.error.message)
        return SummaryResponse(
            summary=TransactionSummary(
                total_transactions=totals.count,
                gross_total=totals.gross_total,
                net_total=totals.net_total,
            ),
            diagnostics=plan.diagnostics,
        )

    def get_all_transactions(
        self,
        flt: Optional[TransactionFilter] = None,
        import_id: Optional[UUID] = None,
    ) -> TransactionPage:
        """Every matching record (no pagination), for CSV export."""
        plan = self.build_plan(flt or TransactionFilter(), import_id=import_id)

        if plan.refine:
            collected = self._collect_refined(plan)
        else:
            result = self.store.query(plan.conditions, True, 0, None)
            collected = _Collected(
                rows=[TransactionResponse.model_validate(row) for row in result.rows],
                error=result.error.message if result.error else None,
            )

        if collected.error is not None:
            return self._failed_page(1, 0, plan, collected.error)
        return TransactionPage(
            items=collected.rows,
            total_count=len(collected.rows),
            page=1,
            page_size=len(collected.rows),
            summary=_summarize(collected.rows),
            refined=plan.refine,
            truncated=collected.truncated,
            diagnostics=plan.diagnostics,
        )

    # ── Private helpers ──────────────────────────────────────────────

    def _day_bound(self, day: Optional[date], _start: bool) -> Optional[datetime]:
        """Local start (or end) of *day* as a UTC instant."""
        if day is None:
            return None
        local = datetime.combine(day, time.min if _start else time.max, tzinfo=self.tz)
        return local.astimezone(timezone.utc)

    def _collect_refined(self, plan: QueryPlan) -> _Collected:
        """Fetch the date-filtered set in chunks and keep rows inside the window."""
        start_minute, end_minute = plan.time_window or _WHOLE_DAY
        collected = _Collected()
        offset = 0

        while True:
            limit = self.chunk_size
            if self.max_rows is not None:
                limit = min(limit, self.max_rows - offset)
                if limit <= 0:
                    collected.truncated = True
                    break

            result = self.store.query(plan.conditions, True, offset, limit)
            if result.error is not None:
                logger.error("Refinement fetch failed at offset %d: %s", offset, result.error.message)
                return _Collected(error=result.error.message)

            for row in result.rows:
                record = TransactionResponse.model_validate(row)
                local = to_local(record.transaction_timestamp, self.tz)
                if start_minute <= local.hour * 60 + local.minute <= end_minute:
                    collected.rows.append(record)

            offset += len(result.rows)
            if not result.rows or offset >= result.count:
                break

        if collected.truncated:
            logger.warning(
                "Time-of-day refinement stopped after %d rows (refinement_max_rows)",
                offset,
            )
        logger.info(
            "Time-of-day refinement: fetched=%d kept=%d window=%s",
            offset,
            len(collected.rows),
            plan.time_window,
        )
        return collected

    @staticmethod
    def _failed_page(
        page: int,
        page_size: int,
        plan: QueryPlan,
        message: str,
    ) -> TransactionPage:
        return TransactionPage(
            page=page,
            page_size=page_size,
            refined=plan.refine,
            diagnostics=plan.diagnostics,
            error=message,
        )


def _minute_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


def _summarize(rows: List[TransactionResponse]) -> TransactionSummary:
    return TransactionSummary(
        total_transactions=len(rows),
        gross_total=sum((r.gross_amount for r in rows), Decimal("0")),
        net_total=sum((r.net_amount for r in rows), Decimal("0")),
    )
