"""
Per-row size estimation from ClickHouse table statistics.

The average compressed bytes-per-row is derived from the active data parts in
`system.parts` divided by the table's total row count. Multiplied by the
in-range row count it gives a one-off projection of the export volume; divided
into the target file size it gives the row budget the slot planner works to.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Sequence

from ch_archiver.domain.models import SQL_TS_FORMAT, TableSpec, TimeRange
from ch_archiver.errors import PlanningError
from ch_archiver.pipeline.abstract import QueryClient
from ch_archiver.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class SizeEstimate:
    rows_total: int
    compressed_bytes: int
    bytes_per_row: float
    rows_in_range: int

    @property
    def estimated_bytes(self) -> int:
        return int(self.rows_in_range * self.bytes_per_row)


def range_predicate(table: TableSpec, begin: datetime, end: datetime) -> str:
    """WHERE clause selecting `[begin, end)` on the table's time column."""
    column = table.time_column
    return (
        f"`{column}`>='{begin.strftime(SQL_TS_FORMAT)}' "
        f"AND `{column}`<'{end.strftime(SQL_TS_FORMAT)}'"
    )


def select_scalar(source: QueryClient, query: str, host: str = "") -> int:
    """Run a single-value query and return it as an int (NULL reads as 0)."""
    log.info(f"host {host}: query: {query}", extra={"host": host})
    rows: List[Sequence[Any]] = source.execute(query)
    if not rows or rows[0][0] is None:
        return 0
    return int(rows[0][0])


def estimate_row_size(
    source: QueryClient,
    database: str,
    table: TableSpec,
    time_range: TimeRange,
    host: str = "",
) -> Optional[SizeEstimate]:
    """
    Estimate bytes-per-row for `table` and count its rows inside `time_range`.

    Returns None when the table holds no rows at all; the caller then skips
    planning and export for this (host, table) pair.

    Raises
    ------
    PlanningError
        If any statistics query fails.
    """
    try:
        rows_total = select_scalar(source, f"SELECT count() FROM {table.name}", host)
        if rows_total == 0:
            log.info(
                f"host {host}: table {table.name} is empty, skipping",
                extra={"host": host, "table": table.name},
            )
            return None
        compressed = select_scalar(
            source,
            "SELECT sum(data_compressed_bytes) AS compressed FROM system.parts "
            f"WHERE database='{database}' AND table='{table.name}' AND active=1",
            host,
        )
        predicate = range_predicate(table, time_range.begin, time_range.end)
        rows_in_range = select_scalar(
            source, f"SELECT count() FROM {table.name} WHERE {predicate}", host
        )
    except Exception as exc:  # noqa: BLE001 - any driver error makes the plan untrustworthy
        raise PlanningError(f"size estimation failed: {exc}", host=host, table=table.name) from exc

    estimate = SizeEstimate(
        rows_total=rows_total,
        compressed_bytes=compressed,
        bytes_per_row=compressed / rows_total,
        rows_in_range=rows_in_range,
    )
    log.info(
        f"host {host}: total rows to export: {estimate.rows_in_range}, "
        f"estimated size (in bytes): {estimate.estimated_bytes}",
        extra={"host": host, "table": table.name, "rows": estimate.rows_in_range},
    )
    return estimate


def row_budget(max_file_size: int, bytes_per_row: float) -> Optional[int]:
    """
    Maximum rows per slot so a slot's file stays under `max_file_size`.

    None means unbounded (no compressed bytes reported, so every granularity fits).
    """
    if bytes_per_row <= 0:
        return None
    return max(int(max_file_size / bytes_per_row), 1)


__all__ = ["SizeEstimate", "estimate_row_size", "range_predicate", "row_budget", "select_scalar"]
