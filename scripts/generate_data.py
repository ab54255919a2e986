"""
Synthetic data generator for trying ch-archiver against a scratch ClickHouse.

Creates a MergeTree table partitioned by month and fills it with deterministic
pseudo-random sensor readings spread over a time window. Row density can be
skewed towards the end of the window so that coarse granularities overflow the
row budget and the slot planner has to fall back to finer ones.
"""

from __future__ import annotations

import random
import sys
import time
from datetime import datetime, timedelta
from typing import Iterator, List, Tuple

import typer
from clickhouse_driver import Client

from ch_archiver.config import get_settings

app = typer.Typer(help="Generate synthetic sensor rows and load them into ClickHouse.")

Row = Tuple[datetime, str, float, int]

DDL = """
CREATE TABLE IF NOT EXISTS {table}
(
    `@time` DateTime,
    sensor String,
    value Float64,
    status UInt8
)
ENGINE = MergeTree
PARTITION BY toYYYYMM(`@time`)
ORDER BY (sensor, `@time`)
"""


def _generate_rows(
    rows: int, begin: datetime, end: datetime, seed: int, skew: float = 0.0
) -> Iterator[Row]:
    """
    Yield `rows` readings with timestamps in `[begin, end)`.

    `skew` in [0, 1) biases timestamps towards `end`; 0 is uniform.
    """
    if not 0.0 <= skew < 1.0:
        raise ValueError("skew must be in [0, 1)")
    rng = random.Random(seed)
    span = (end - begin).total_seconds()
    sensors = [f"sensor-{i:03d}" for i in range(32)]
    for _ in range(rows):
        position = rng.random() ** (1.0 - skew)
        offset = min(int(position * span), int(span) - 1)
        yield (
            begin + timedelta(seconds=offset),
            rng.choice(sensors),
            round(rng.gauss(20.0, 5.0), 3),
            rng.choice([0, 0, 0, 1]),
        )


def _batched(rows: Iterator[Row], batch_size: int) -> Iterator[List[Row]]:
    buffer: List[Row] = []
    for row in rows:
        buffer.append(row)
        if len(buffer) >= batch_size:
            yield buffer
            buffer = []
    if buffer:
        yield buffer


def _load(client: Client, table: str, rows: Iterator[Row], batch_size: int) -> int:
    client.execute(DDL.format(table=table))
    loaded = 0
    for batch in _batched(rows, batch_size):
        client.execute(f"INSERT INTO {table} (`@time`, sensor, value, status) VALUES", batch)
        loaded += len(batch)
    return loaded


@app.command()
def main(
    table: str = typer.Option("sensor_readings", "--table", help="Target table name."),
    rows: int = typer.Option(1_000_000, "--rows", "-r", help="Number of rows to generate."),
    begin: str = typer.Option("2019-01-01 00:00:00", "--begin", help="Window start."),
    end: str = typer.Option("2020-11-01 00:00:00", "--end", help="Window end (exclusive)."),
    skew: float = typer.Option(0.5, "--skew", help="Bias towards the window end, in [0, 1)."),
    batch_size: int = typer.Option(100_000, "--batch-size", "-b", help="Rows per INSERT."),
    seed: int = typer.Option(42, "--seed", help="Deterministic RNG seed."),
    host: str | None = typer.Option(None, "--host", help="ClickHouse host (default: first CH_HOSTS)."),
) -> None:
    """
    Generate synthetic rows and insert them into ClickHouse.
    """
    settings = get_settings()
    ts_begin = datetime.strptime(begin, settings.ts_format)
    ts_end = datetime.strptime(end, settings.ts_format)
    target = host or settings.ch_hosts[0]
    client = Client(
        host=target,
        port=settings.ch_port,
        database=settings.ch_database,
        user=settings.ch_user,
        password=settings.ch_password,
    )

    start = time.perf_counter()
    typer.echo(f"Loading {rows:,} rows into {target}:{table} (batch={batch_size}, seed={seed})")
    try:
        loaded = _load(client, table, _generate_rows(rows, ts_begin, ts_end, seed, skew), batch_size)
    finally:
        client.disconnect()
    duration = time.perf_counter() - start
    typer.echo(f"Loaded {loaded:,} rows in {duration:.2f}s ({loaded / duration:,.0f} rows/s).")
    typer.echo(f'Export it with: EXPORT_TABLES=\'{{"{table}": "@time"}}\' ch-archiver plan')


if __name__ == "__main__":
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)
