"""
Run coordinator: fans the export pipeline out across every source host.

Usage (example from CLI):
    from ch_archiver.orchestrator import run_export

    report = run_export(get_settings())
    print(report["succeeded"], report["estimated_bytes"])

Flow of a run:
- parse the export window once, connect every host, claim the HDFS run root
  (removed and recreated);
- start one host task per source host; for each configured table a task
  estimates the row size, plans slots and submits one export unit per slot to
  the shared BoundedWorkerPool, blocking while the pool is saturated;
- wait for every host task and every unit (the wait barrier), then report
  either failure or the estimated volume and throughput.

A planning failure on any host trips the shared fail-fast counter, so other
hosts stop dispatching and queued units skip their statements; the error is
re-raised once the barrier releases.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Mapping, Optional, Sequence

from ch_archiver.config import Settings, get_settings
from ch_archiver.domain.models import TableSpec, TimeRange
from ch_archiver.infrastructure.clickhouse import close_sources, connect_sources
from ch_archiver.infrastructure.hdfs import connect_filesystem, prepare_run_root
from ch_archiver.pipeline.abstract import DestinationFilesystem, PlanEntry, QueryClient, RunReport
from ch_archiver.pipeline.estimator import estimate_row_size, row_budget
from ch_archiver.pipeline.exporter import ExportContext, build_units, export_unit, run_root_path
from ch_archiver.pipeline.planner import plan_slots
from ch_archiver.pipeline.pool import BoundedWorkerPool
from ch_archiver.pipeline.stats import RunStatistics
from ch_archiver.utils.logging import get_logger
from ch_archiver.utils.profiler import profile_block

log = get_logger(__name__)


def _drive_host(
    host: str,
    source: QueryClient,
    tables: Sequence[TableSpec],
    settings: Settings,
    time_range: TimeRange,
    context: ExportContext,
    pool: BoundedWorkerPool,
    stats: RunStatistics,
) -> int:
    """
    Host task: estimate, plan and submit every slot of every table.

    Returns the number of units submitted. Any exception trips the fail-fast
    counter before propagating.
    """
    submitted = 0
    try:
        for table in tables:
            if stats.failed:
                log.warning(f"host {host}: run already failed, stop dispatching", extra={"host": host})
                return submitted
            estimate = estimate_row_size(source, settings.ch_database, table, time_range, host)
            if estimate is None:
                continue
            stats.add_estimated_bytes(estimate.estimated_bytes)
            plan = plan_slots(
                source,
                table,
                time_range,
                row_budget(settings.max_file_size, estimate.bytes_per_row),
                settings.granularities,
                host,
            )
            for unit in build_units(host, table, plan, time_range):
                if stats.failed:
                    log.warning(
                        f"host {host}: run already failed, stop dispatching",
                        extra={"host": host},
                    )
                    return submitted
                pool.submit(export_unit, unit, source, context, stats)
                submitted += 1
    except Exception:
        stats.record_error()
        raise
    log.info(f"host {host}: submitted {submitted} export units", extra={"host": host, "units": submitted})
    return submitted


def _report(stats: RunStatistics, duration: float, submitted: int, run_root: str) -> RunReport:
    report = RunReport(
        succeeded=not stats.failed,
        failed_units=stats.errors,
        units_submitted=submitted,
        estimated_bytes=stats.estimated_bytes,
        duration_seconds=round(duration, 2),
        throughput_bytes_per_sec=None,
        run_root=run_root,
    )
    if stats.failed:
        log.error("export failed", extra={"failed_units": stats.errors})
        return report

    size = stats.estimated_bytes
    msg = f"exported {size} bytes in {int(duration)} seconds"
    if int(duration) != 0:
        throughput = round(size / duration, 2)
        report["throughput_bytes_per_sec"] = throughput
        msg += f", {throughput} bytes/s"
    log.info(msg, extra={"estimated_bytes": size, "duration": round(duration, 2)})
    return report


def run_export(
    settings: Optional[Settings] = None,
    *,
    sources: Optional[Mapping[str, QueryClient]] = None,
    filesystem: Optional[DestinationFilesystem] = None,
) -> RunReport:
    """
    Export every configured table from every host for the configured window.

    Parameters
    ----------
    settings : Settings | None
        Run configuration. Defaults to the cached environment settings.
    sources : mapping[str, QueryClient] | None
        Ready-made host connections keyed by address; when None, connections
        are opened from settings and closed when the run ends.
    filesystem : DestinationFilesystem | None
        Destination store; when None, HDFS is opened from settings.

    Returns
    -------
    RunReport
        `succeeded` is False when any export unit failed.

    Raises
    ------
    ConnectivityError, SetupError
        Before any export work is scheduled.
    PlanningError
        After the wait barrier, when estimation or slotting failed on a host.
    """
    settings = settings or get_settings()
    time_range = settings.time_range()
    tables = settings.table_specs()
    run_root = run_root_path(settings.hdfs_dir, time_range)
    if not tables:
        # Leave any previous archive of this window in place.
        log.warning("No tables configured; nothing to export")
        return _report(RunStatistics(), 0.0, 0, run_root)

    owned = sources is None
    hosts: Mapping[str, QueryClient] = connect_sources(settings) if sources is None else sources
    try:
        if filesystem is None:
            filesystem = connect_filesystem(settings)
        prepare_run_root(filesystem, run_root, [table.name for table in tables])
        context = ExportContext(
            hdfs_addr=settings.hdfs_addr,
            run_root=run_root,
            output_format=settings.output_format,
        )
        stats = RunStatistics()
        pool = BoundedWorkerPool(settings.parallel_export * len(hosts))
        failures: List[BaseException] = []

        log.info(
            f"[RUN START] {len(hosts)} host(s), {len(tables)} table(s), pool size {pool.size}",
            extra={"hosts": list(hosts), "tables": [t.name for t in tables], "pool_size": pool.size},
        )
        with profile_block("export") as profile:
            try:
                with ThreadPoolExecutor(
                    max_workers=max(len(hosts), 1), thread_name_prefix="host"
                ) as host_tasks:
                    futures = {
                        host_tasks.submit(
                            _drive_host,
                            host,
                            source,
                            tables,
                            settings,
                            time_range,
                            context,
                            pool,
                            stats,
                        ): host
                        for host, source in hosts.items()
                    }
                    for future in as_completed(futures):
                        exc = future.exception()
                        if exc is not None:
                            log.error(
                                f"host {futures[future]}: got error {exc}",
                                extra={"host": futures[future]},
                            )
                            failures.append(exc)
            finally:
                pool.join()

        if failures:
            raise failures[0]

        report = _report(stats, profile.duration_seconds, pool.submitted, run_root)
        report["peak_rss_bytes"] = profile.peak_rss_bytes
        report["cpu_percent"] = profile.cpu_percent
        return report
    finally:
        if owned:
            close_sources(hosts)  # type: ignore[arg-type]


def plan_export(
    settings: Optional[Settings] = None,
    *,
    sources: Optional[Mapping[str, QueryClient]] = None,
) -> List[PlanEntry]:
    """
    Preview slot plans for every (host, table) pair without exporting anything.
    """
    settings = settings or get_settings()
    time_range = settings.time_range()
    owned = sources is None
    hosts: Mapping[str, QueryClient] = connect_sources(settings) if sources is None else sources
    entries: List[PlanEntry] = []
    try:
        for host, source in hosts.items():
            for table in settings.table_specs():
                estimate = estimate_row_size(source, settings.ch_database, table, time_range, host)
                if estimate is None:
                    entries.append(
                        PlanEntry(
                            host=host,
                            table=table.name,
                            rows_in_range=0,
                            estimated_bytes=0,
                            granularity=None,
                            slots=0,
                            queries=0,
                        )
                    )
                    continue
                budget = row_budget(settings.max_file_size, estimate.bytes_per_row)
                plan = plan_slots(
                    source, table, time_range, budget, settings.granularities, host
                )
                entries.append(
                    PlanEntry(
                        host=host,
                        table=table.name,
                        rows_in_range=estimate.rows_in_range,
                        bytes_per_row=round(estimate.bytes_per_row, 2),
                        row_budget=budget,
                        estimated_bytes=estimate.estimated_bytes,
                        granularity=plan.granularity,
                        slots=len(plan),
                        queries=plan.queries,
                    )
                )
    finally:
        if owned:
            close_sources(hosts)  # type: ignore[arg-type]
    return entries


__all__ = ["plan_export", "run_export"]
