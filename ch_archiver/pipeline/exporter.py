"""
Export pipeline: one slot of one table on one host, written to HDFS.

Each unit drives ClickHouse's HDFS table engine through four statements:

1. DROP TABLE IF EXISTS <staging>   (leftover from an earlier failed run)
2. CREATE TABLE <staging> AS <table> ENGINE=HDFS('hdfs://addr/path', 'Parquet')
3. INSERT INTO <staging> SELECT * FROM <table> WHERE <slot range>
4. DROP TABLE <staging>             (the written file stays in place)

Every statement is preceded by a check of the shared fail-fast flag. A unit
that fails logs, bumps the error counter and returns; running siblings are
not interrupted.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from datetime import datetime
from typing import List

from ch_archiver.domain.models import DIR_TS_FORMAT, TableSpec, TimeRange
from ch_archiver.pipeline.abstract import QueryClient
from ch_archiver.pipeline.estimator import range_predicate
from ch_archiver.pipeline.planner import SlotPlan, slot_ranges
from ch_archiver.pipeline.stats import RunStatistics
from ch_archiver.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class ExportContext:
    """Run-scoped destination parameters shared by every unit."""

    hdfs_addr: str
    run_root: str
    output_format: str = "Parquet"

    @property
    def extension(self) -> str:
        return self.output_format.lower()


@dataclass(frozen=True)
class ExportUnit:
    host: str
    table: TableSpec
    seq: int
    slot_begin: datetime
    slot_end: datetime


def run_root_path(hdfs_dir: str, time_range: TimeRange) -> str:
    return posixpath.join(hdfs_dir, time_range.dirname())


def staging_table_name(unit: ExportUnit) -> str:
    return f"hdfs_{unit.table.name}_{unit.slot_begin.strftime(DIR_TS_FORMAT)}"


def table_dir(run_root: str, table: TableSpec) -> str:
    return posixpath.join(run_root, table.name)


def destination_path(unit: ExportUnit, context: ExportContext) -> str:
    """
    `<run_root>/<table>/<host>_<slot begin>.<ext>`; the fixed-width timestamp
    suffix keeps host names containing `_` unambiguous.
    """
    filename = f"{unit.host}_{unit.slot_begin.strftime(DIR_TS_FORMAT)}.{context.extension}"
    return posixpath.join(table_dir(context.run_root, unit.table), filename)


def build_units(host: str, table: TableSpec, plan: SlotPlan, time_range: TimeRange) -> List[ExportUnit]:
    return [
        ExportUnit(host=host, table=table, seq=seq, slot_begin=slot_begin, slot_end=slot_end)
        for seq, slot_begin, slot_end in slot_ranges(plan.boundaries, time_range.end)
    ]


def build_statements(unit: ExportUnit, context: ExportContext) -> List[str]:
    staging = staging_table_name(unit)
    table = unit.table.name
    url = f"hdfs://{context.hdfs_addr}{destination_path(unit, context)}"
    predicate = range_predicate(unit.table, unit.slot_begin, unit.slot_end)
    return [
        f"DROP TABLE IF EXISTS {staging}",
        f"CREATE TABLE {staging} AS {table} ENGINE=HDFS('{url}', '{context.output_format}')",
        f"INSERT INTO {staging} SELECT * FROM {table} WHERE {predicate}",
        f"DROP TABLE {staging}",
    ]


def export_unit(
    unit: ExportUnit,
    source: QueryClient,
    context: ExportContext,
    stats: RunStatistics,
) -> None:
    """
    Execute one export unit. Never raises; failures go to `stats`.
    """
    ctx = {"host": unit.host, "table": unit.table.name, "slot": unit.seq}
    for query in build_statements(unit, context):
        if stats.failed:
            log.debug(
                f"host {unit.host}, table {unit.table.name}, slot {unit.seq}: "
                "run already failed, skipping",
                extra=ctx,
            )
            return
        log.info(
            f"host {unit.host}, table {unit.table.name}, slot {unit.seq}, query: {query}",
            extra=ctx,
        )
        try:
            source.execute(query)
        except Exception as exc:  # noqa: BLE001 - unit failures are counted, not raised
            log.error(
                f"host {unit.host}, table {unit.table.name}, slot {unit.seq}: got error {exc!r}",
                extra=ctx,
            )
            stats.record_error()
            return
    log.info(f"host {unit.host}, table {unit.table.name}, slot {unit.seq}, export done", extra=ctx)


__all__ = [
    "ExportContext",
    "ExportUnit",
    "build_statements",
    "build_units",
    "destination_path",
    "export_unit",
    "run_root_path",
    "staging_table_name",
    "table_dir",
]
