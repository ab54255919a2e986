"""
Adaptive slot planner.

Carves the export window of one (host, table) pair into slots so that no
slot's estimated row volume exceeds the row budget. Candidate granularities
are tried coarsest first; each costs one grouped aggregation:

    SELECT toStartOfInterval(`ts`, INTERVAL 1 month) AS slot, count()
    FROM t WHERE <in range> GROUP BY slot ORDER BY slot

A granularity is abandoned as soon as one bucket overflows the budget, unless
it is the finest candidate, which is always accepted. Coarse slots keep the
file count down; the budget keeps individual files from growing too large.

Bucket starts become slot boundaries. Slot i spans [b[i], b[i+1]) and the
last slot spans [b[-1], end). The first bucket can start before the window
(e.g. mid-month begin, monthly buckets); it is clamped to the window begin,
which selects exactly the same rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Iterator, List, Optional, Sequence, Tuple

from ch_archiver.domain.models import TableSpec, TimeRange
from ch_archiver.errors import PlanningError
from ch_archiver.pipeline.abstract import QueryClient
from ch_archiver.pipeline.estimator import range_predicate
from ch_archiver.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class SlotPlan:
    boundaries: Tuple[datetime, ...] = field(default_factory=tuple)
    granularity: Optional[str] = None
    queries: int = 0

    def __len__(self) -> int:
        return len(self.boundaries)

    def __bool__(self) -> bool:
        return bool(self.boundaries)


def _as_datetime(value: object) -> datetime:
    if isinstance(value, datetime):
        # Column-local wall clock, matching how timestamp literals are compared.
        return value.replace(tzinfo=None) if value.tzinfo is not None else value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    raise TypeError(f"Unexpected slot value {value!r} ({type(value).__name__})")


def slot_query(table: TableSpec, granularity: str, begin: datetime, end: datetime) -> str:
    return (
        f"SELECT toStartOfInterval(`{table.time_column}`, INTERVAL {granularity}) AS slot, count() "
        f"FROM {table.name} WHERE {range_predicate(table, begin, end)} "
        "GROUP BY slot ORDER BY slot"
    )


def plan_slots(
    source: QueryClient,
    table: TableSpec,
    time_range: TimeRange,
    row_budget: Optional[int],
    granularities: Sequence[str],
    host: str = "",
) -> SlotPlan:
    """
    Pick the coarsest granularity whose buckets all fit `row_budget`.

    Parameters
    ----------
    row_budget : int | None
        Maximum rows per slot; None accepts the first granularity.
    granularities : sequence[str]
        ClickHouse interval literals ordered coarsest to finest.

    Returns
    -------
    SlotPlan
        Ascending boundaries (empty when no row falls in range), the accepted
        granularity and the number of aggregation queries issued.

    Raises
    ------
    PlanningError
        If a grouping query fails.
    """
    if not granularities:
        raise ValueError("At least one candidate granularity is required")

    finest = len(granularities) - 1

    for index, granularity in enumerate(granularities):
        query = slot_query(table, granularity, time_range.begin, time_range.end)
        log.info(f"host {host}: query: {query}", extra={"host": host, "table": table.name})
        try:
            rows = source.execute(query)
        except Exception as exc:  # noqa: BLE001 - any driver error aborts planning
            raise PlanningError(
                f"slot query failed for granularity '{granularity}': {exc}",
                host=host,
                table=table.name,
            ) from exc

        boundaries: List[datetime] = []
        overflow = False
        for slot, count in rows:
            if row_budget is not None and count > row_budget and index != finest:
                overflow = True
                break
            ts = max(_as_datetime(slot), time_range.begin)
            if boundaries and ts <= boundaries[-1]:
                continue
            boundaries.append(ts)

        if overflow:
            log.info(
                f"host {host}: granularity '{granularity}' exceeds {row_budget} rows per slot, "
                "trying a finer one",
                extra={"host": host, "table": table.name, "granularity": granularity},
            )
            continue

        if row_budget is not None and index == finest and any(c > row_budget for _, c in rows):
            log.warning(
                f"host {host}: finest granularity '{granularity}' still exceeds "
                f"{row_budget} rows per slot for {table.name}",
                extra={"host": host, "table": table.name, "granularity": granularity},
            )
        plan = SlotPlan(boundaries=tuple(boundaries), granularity=granularity, queries=index + 1)
        log.info(
            f"host {host}: table {table.name}: {len(plan)} slots at granularity '{granularity}'",
            extra={"host": host, "table": table.name, "slots": len(plan)},
        )
        return plan

    # Unreachable: the finest granularity is never abandoned.
    raise AssertionError("slot planner exhausted all granularities")


def slot_ranges(
    boundaries: Sequence[datetime], end: datetime
) -> Iterator[Tuple[int, datetime, datetime]]:
    """Yield `(seq, slot_begin, slot_end)` for each slot of a boundary sequence."""
    last = len(boundaries) - 1
    for seq, slot_begin in enumerate(boundaries):
        slot_end = boundaries[seq + 1] if seq != last else end
        yield seq, slot_begin, slot_end


__all__ = ["SlotPlan", "plan_slots", "slot_query", "slot_ranges"]
