from __future__ import annotations

import sys
from typing import List, Optional

import typer
from pydantic import ValidationError

from ch_archiver.config import Settings, get_settings
from ch_archiver.errors import ArchiverError
from ch_archiver.orchestrator import plan_export, run_export
from ch_archiver.reporter import print_plan, print_run_report
from ch_archiver.utils.logging import configure_logging, get_logger

app = typer.Typer(help="Archive historical ClickHouse rows to Parquet files on HDFS.")
log = get_logger(__name__)


def _effective_settings(
    begin: Optional[str],
    end: Optional[str],
    parallel: Optional[int],
    tables: Optional[List[str]],
) -> Settings:
    settings = get_settings()
    selected = None
    if tables:
        unknown = [name for name in tables if name not in settings.tables]
        if unknown:
            raise typer.BadParameter(
                f"Unknown table(s): {', '.join(unknown)}. Configured: {', '.join(settings.tables)}",
                param_hint="--table",
            )
        selected = {name: settings.tables[name] for name in tables}
    try:
        return settings.with_overrides(
            ts_begin=begin,
            ts_end=end,
            parallel_export=parallel,
            tables=selected,
        )
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc


_BEGIN = typer.Option(None, "--begin", "-b", help="Override export window start (EXPORT_TS_FORMAT).")
_END = typer.Option(None, "--end", "-e", help="Override export window end (exclusive).")
_TABLES = typer.Option(None, "--table", "-t", help="Restrict to configured table(s); repeatable.")


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"ClickHouse={settings.ch_user}@{','.join(settings.ch_hosts)}:{settings.ch_port}/"
        f"{settings.ch_database} | HDFS={settings.hdfs_user}@{settings.hdfs_addr}{settings.hdfs_dir}"
    )
    typer.echo(
        f"window=[{settings.ts_begin}, {settings.ts_end}) max_file_size={settings.max_file_size} "
        f"granularities={','.join(settings.granularities)} parallel={settings.parallel_export} "
        f"format={settings.output_format}"
    )
    for table, column in settings.tables.items():
        typer.echo(f"table {table} (time column {column})")


@app.command()
def plan(
    begin: Optional[str] = _BEGIN,
    end: Optional[str] = _END,
    tables: Optional[List[str]] = _TABLES,
) -> None:
    """
    Estimate sizes and show the slot plan for every host and table; writes nothing.
    """
    settings = _effective_settings(begin, end, None, tables)
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    try:
        entries = plan_export(settings)
    except ArchiverError as exc:
        log.error(f"got error {exc}")
        raise typer.Exit(code=1) from exc
    print_plan(entries)


@app.command()
def run(
    begin: Optional[str] = _BEGIN,
    end: Optional[str] = _END,
    parallel: Optional[int] = typer.Option(
        None, "--parallel", "-p", min=1, help="Concurrent exports per source host."
    ),
    tables: Optional[List[str]] = _TABLES,
) -> None:
    """
    Export the configured window from every host to HDFS.
    """
    settings = _effective_settings(begin, end, parallel, tables)
    configure_logging(level=settings.log_level, json_logs=settings.log_json)
    typer.echo(
        f"Exporting [{settings.ts_begin}, {settings.ts_end}) from {len(settings.ch_hosts)} host(s) "
        f"(parallel={settings.parallel_export} per host)."
    )
    try:
        report = run_export(settings)
    except ArchiverError as exc:
        log.error(f"got error {exc}")
        raise typer.Exit(code=1) from exc
    print_run_report(report)
    if not report.get("succeeded", False):
        raise typer.Exit(code=1)


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
