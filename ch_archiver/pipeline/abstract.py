"""
Interfaces and result contracts for the export pipeline.

The estimator, planner and export units only need a query interface on the
source side and a path-addressed store on the destination side; both are
expressed as Protocols so tests (and alternative drivers) can stand in for
clickhouse-driver and pyarrow. RunReport and PlanEntry are TypedDicts to keep
reporting and logging tolerant of missing values.
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol, Sequence, TypedDict, runtime_checkable


@runtime_checkable
class QueryClient(Protocol):
    """
    Minimal query surface of a source connection.

    Matches `clickhouse_driver.Client.execute`: returns a list of row tuples for
    SELECTs and an empty list for DDL/INSERT ... SELECT statements.
    """

    def execute(self, query: str) -> List[Sequence[Any]]:
        ...


@runtime_checkable
class DestinationFilesystem(Protocol):
    """Hierarchical, path-addressed store that receives the exported files."""

    def remove_all(self, path: str) -> None:
        """Recursively remove `path`; a missing path is not an error."""
        ...

    def make_dirs(self, path: str) -> None:
        """Recursively create `path`."""
        ...


class RunReport(TypedDict, total=False):
    """
    Outcome of a full export run.

    `estimated_bytes` is the best-effort projection accumulated from per-row
    size estimates, not a count of bytes actually written.
    """

    succeeded: bool
    failed_units: int
    units_submitted: int
    estimated_bytes: int
    duration_seconds: float
    throughput_bytes_per_sec: Optional[float]
    peak_rss_bytes: Optional[int]
    cpu_percent: Optional[float]
    run_root: str


class PlanEntry(TypedDict, total=False):
    """Slot plan preview for one (host, table) pair."""

    host: str
    table: str
    rows_in_range: int
    bytes_per_row: float
    row_budget: Optional[int]
    estimated_bytes: int
    granularity: Optional[str]
    slots: int
    queries: int


__all__ = [
    "DestinationFilesystem",
    "PlanEntry",
    "QueryClient",
    "RunReport",
]
