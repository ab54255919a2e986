from __future__ import annotations

from datetime import datetime

from ch_archiver.domain.models import TableSpec, TimeRange
from ch_archiver.pipeline.exporter import (
    ExportContext,
    ExportUnit,
    build_statements,
    build_units,
    destination_path,
    export_unit,
    run_root_path,
    staging_table_name,
)
from ch_archiver.pipeline.planner import SlotPlan
from ch_archiver.pipeline.pool import BoundedWorkerPool
from ch_archiver.pipeline.stats import RunStatistics
from tests.fakes import FakeClickHouse

TABLE = TableSpec(name="sensor_dt_result", time_column="@time")
WINDOW = TimeRange(begin=datetime(1970, 1, 1), end=datetime(2020, 11, 1))
CONTEXT = ExportContext(
    hdfs_addr="namenode:8020",
    run_root="/user/root/19700101000000_20201101000000",
)
STATEMENTS_PER_UNIT = 4


def _unit(seq: int = 0, host: str = "ch-1") -> ExportUnit:
    return ExportUnit(
        host=host,
        table=TABLE,
        seq=seq,
        slot_begin=datetime(2020, seq + 1, 1),
        slot_end=datetime(2020, seq + 2, 1),
    )


def test_run_root_is_named_after_window() -> None:
    assert run_root_path("/user/root", WINDOW) == "/user/root/19700101000000_20201101000000"


def test_statements_for_one_unit() -> None:
    unit = _unit(seq=2)

    assert staging_table_name(unit) == "hdfs_sensor_dt_result_20200301000000"
    assert destination_path(unit, CONTEXT) == (
        "/user/root/19700101000000_20201101000000/sensor_dt_result/ch-1_20200301000000.parquet"
    )
    assert build_statements(unit, CONTEXT) == [
        "DROP TABLE IF EXISTS hdfs_sensor_dt_result_20200301000000",
        "CREATE TABLE hdfs_sensor_dt_result_20200301000000 AS sensor_dt_result "
        "ENGINE=HDFS('hdfs://namenode:8020/user/root/19700101000000_20201101000000/"
        "sensor_dt_result/ch-1_20200301000000.parquet', 'Parquet')",
        "INSERT INTO hdfs_sensor_dt_result_20200301000000 SELECT * FROM sensor_dt_result "
        "WHERE `@time`>='2020-03-01 00:00:00' AND `@time`<'2020-04-01 00:00:00'",
        "DROP TABLE hdfs_sensor_dt_result_20200301000000",
    ]


def test_output_format_drives_engine_and_extension() -> None:
    context = ExportContext(hdfs_addr="nn:8020", run_root="/r", output_format="ORC")
    statements = build_statements(_unit(), context)

    assert statements[1].endswith("/r/sensor_dt_result/ch-1_20200101000000.orc', 'ORC')")


def test_build_units_covers_window_tail() -> None:
    plan = SlotPlan(
        boundaries=(datetime(2019, 1, 1), datetime(2020, 1, 1)), granularity="1 year", queries=1
    )

    units = build_units("ch-1", TABLE, plan, WINDOW)

    assert [(u.seq, u.slot_begin, u.slot_end) for u in units] == [
        (0, datetime(2019, 1, 1), datetime(2020, 1, 1)),
        (1, datetime(2020, 1, 1), WINDOW.end),
    ]


def test_destination_paths_are_unique_across_units() -> None:
    other = TableSpec(name="alarms", time_column="ts")
    units = [
        ExportUnit(host=host, table=table, seq=seq, slot_begin=datetime(2020, seq + 1, 1),
                   slot_end=datetime(2020, seq + 2, 1))
        for host in ("ch-1", "ch-2", "ch-3")
        for table in (TABLE, other)
        for seq in range(10)
    ]

    paths = {destination_path(unit, CONTEXT) for unit in units}

    assert len(paths) == len(units)


def test_underscores_in_names_do_not_collide() -> None:
    begin, end = datetime(2020, 1, 1), datetime(2020, 2, 1)
    first = ExportUnit(
        host="c", table=TableSpec(name="a_b", time_column="ts"), seq=0, slot_begin=begin, slot_end=end
    )
    second = ExportUnit(
        host="b_c", table=TableSpec(name="a", time_column="ts"), seq=0, slot_begin=begin, slot_end=end
    )

    assert destination_path(first, CONTEXT) != destination_path(second, CONTEXT)
    assert destination_path(first, CONTEXT).endswith("/a_b/c_20200101000000.parquet")
    assert destination_path(second, CONTEXT).endswith("/a/b_c_20200101000000.parquet")



def test_successful_unit_runs_all_statements() -> None:
    source = FakeClickHouse()
    stats = RunStatistics()

    export_unit(_unit(), source, CONTEXT, stats)

    assert source.queries == build_statements(_unit(), CONTEXT)
    assert stats.errors == 0


def test_unit_skips_everything_once_run_failed() -> None:
    source = FakeClickHouse()
    stats = RunStatistics()
    stats.record_error()

    export_unit(_unit(), source, CONTEXT, stats)

    assert source.queries == []
    assert stats.errors == 1


def test_failed_statement_stops_unit_and_trips_flag() -> None:
    source = FakeClickHouse(fail_on=lambda q: q.startswith("CREATE "))
    stats = RunStatistics()

    export_unit(_unit(), source, CONTEXT, stats)

    assert [q.split()[0] for q in source.queries] == ["DROP", "CREATE"]
    assert stats.errors == 1
    assert stats.failed


def test_third_of_five_units_fails_on_copy() -> None:
    failing = _unit(seq=2)
    source = FakeClickHouse(
        fail_on=lambda q: q.startswith("INSERT ") and staging_table_name(failing) in q
    )
    stats = RunStatistics()
    units = [_unit(seq=seq) for seq in range(5)]

    # one slot: units run one after another in submission order
    with BoundedWorkerPool(1) as pool:
        for unit in units:
            pool.submit(export_unit, unit, source, CONTEXT, stats)

    assert stats.errors == 1
    executed = {
        unit.seq: [q for q in source.queries if staging_table_name(unit) in q] for unit in units
    }
    assert len(executed[0]) == STATEMENTS_PER_UNIT
    assert len(executed[1]) == STATEMENTS_PER_UNIT
    assert [q.split()[0] for q in executed[2]] == ["DROP", "CREATE", "INSERT"]
    assert executed[3] == []
    assert executed[4] == []
