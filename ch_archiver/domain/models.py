"""
Domain models for ch-archiver.

Immutable value objects describing what is exported: the global export window
and the tables (with their primary time column) to archive. Both are shared
read-only by every concurrent host task and export unit.
"""
from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

DIR_TS_FORMAT = "%Y%m%d%H%M%S"
# Timestamp literal format ClickHouse parses in DateTime comparisons.
SQL_TS_FORMAT = "%Y-%m-%d %H:%M:%S"


class TimeRange(BaseModel):
    """
    Half-open export window `[begin, end)`.
    """

    begin: datetime = Field(..., description="Inclusive lower bound.")
    end: datetime = Field(..., description="Exclusive upper bound.")

    model_config = {
        "frozen": True,
    }

    @model_validator(mode="after")
    def _check_order(self) -> "TimeRange":
        if self.begin >= self.end:
            raise ValueError(f"begin ({self.begin}) must be earlier than end ({self.end})")
        return self

    def dirname(self) -> str:
        """Name of the run-scoped destination directory for this window."""
        return f"{self.begin.strftime(DIR_TS_FORMAT)}_{self.end.strftime(DIR_TS_FORMAT)}"


class TableSpec(BaseModel):
    """
    A source table and the column its rows are partitioned by.
    """

    name: str = Field(..., description="Table name in the source database.")
    time_column: str = Field(..., description="Primary DateTime column used for slotting.")

    model_config = {
        "frozen": True,
    }


__all__ = ["DIR_TS_FORMAT", "SQL_TS_FORMAT", "TableSpec", "TimeRange"]
