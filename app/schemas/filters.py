"""Read-side filter value object for transaction queries."""

from __future__ import annotations

from datetime import date, time
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class TransactionFilter(BaseModel):
    """Date range, time-of-day window, acquirer and modality selection.

    ``start_time``/``end_time`` only take effect when at least one calendar
    date anchors them.
    """

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    acquirers: set[str] = Field(default_factory=set)
    modalities: set[str] = Field(default_factory=set)

    @model_validator(mode="after")
    def _check_date_order(self) -> "TransactionFilter":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self

    @property
    def has_date_bound(self) -> bool:
        return self.start_date is not None or self.end_date is not None

    @property
    def has_time_bound(self) -> bool:
        return self.start_time is not None or self.end_time is not None
