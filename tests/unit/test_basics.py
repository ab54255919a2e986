from datetime import datetime
from time import sleep

import pytest
from pydantic import ValidationError

from ch_archiver import config
from ch_archiver.domain.models import TableSpec, TimeRange
from ch_archiver.utils import profiler
from scripts import generate_data

_ENV_VARS = [
    "CH_HOSTS",
    "CH_PORT",
    "EXPORT_TABLES",
    "EXPORT_BEGIN",
    "EXPORT_END",
    "EXPORT_GRANULARITIES",
    "EXPORT_FORMAT",
    "EXPORT_TS_FORMAT",
    "MAX_FILE_SIZE",
    "PARALLEL_EXPORT",
    "HDFS_DIR",
]


def test_settings_defaults(monkeypatch, tmp_path):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)  # no stray .env

    settings = config.Settings()
    assert settings.ch_hosts == ["localhost"]
    assert settings.ch_port == 9000
    assert settings.max_file_size == 10_000_000_000
    assert settings.granularities == ["1 year", "1 month", "1 week", "1 day", "4 hour", "1 hour"]
    assert settings.parallel_export == 4
    assert settings.output_format == "Parquet"
    assert settings.tables == {}


def test_settings_read_json_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CH_HOSTS", '["10.0.0.1", "10.0.0.2"]')
    monkeypatch.setenv("EXPORT_TABLES", '{"sensor_dt_result": "@time"}')
    monkeypatch.setenv("PARALLEL_EXPORT", "8")

    settings = config.Settings()

    assert settings.ch_hosts == ["10.0.0.1", "10.0.0.2"]
    assert settings.table_specs() == [TableSpec(name="sensor_dt_result", time_column="@time")]
    assert settings.parallel_export == 8


def test_settings_parse_time_range_once(make_settings):
    settings = make_settings(ts_begin="2020-01-01 00:00:00", ts_end="2020-02-01 12:00:00")
    time_range = settings.time_range()
    assert time_range == TimeRange(begin=datetime(2020, 1, 1), end=datetime(2020, 2, 1, 12))
    assert time_range.dirname() == "20200101000000_20200201120000"


@pytest.mark.parametrize(
    "overrides",
    [
        {"ts_begin": "2020-11-01 00:00:00", "ts_end": "2020-01-01 00:00:00"},
        {"ts_begin": "2020/01/01"},
        {"granularities": ["1 fortnight"]},
        {"granularities": ["1 month; DROP TABLE x"]},
        {"granularities": []},
        {"ch_hosts": []},
        {"parallel_export": 0},
        {"max_file_size": 0},
        {"output_format": "Parquet')"},
        {"tables": {"../etc": "ts"}},
    ],
)
def test_settings_reject_invalid_values(make_settings, overrides):
    with pytest.raises(ValidationError):
        make_settings(**overrides)


def test_settings_normalize_granularities(make_settings):
    settings = make_settings(granularities=["1  YEAR", " 4 hour "])
    assert settings.granularities == ["1 year", "4 hour"]


def test_settings_are_immutable(make_settings):
    settings = make_settings()
    with pytest.raises(ValidationError):
        settings.parallel_export = 16


def test_with_overrides_revalidates(make_settings):
    settings = make_settings()
    narrowed = settings.with_overrides(ts_begin="2020-01-01 00:00:00", parallel_export=None)

    assert narrowed.ts_begin == "2020-01-01 00:00:00"
    assert narrowed.parallel_export == settings.parallel_export
    assert settings.with_overrides() is settings
    with pytest.raises(ValidationError):
        settings.with_overrides(ts_end="1960-01-01 00:00:00")


def test_time_range_rejects_empty_window():
    with pytest.raises(ValidationError):
        TimeRange(begin=datetime(2020, 1, 1), end=datetime(2020, 1, 1))


def test_profile_block_measures_time():
    with profiler.profile_block("sleep", sample_interval_ms=10) as stats:
        sleep(0.05)
    assert stats.duration_seconds >= 0.05
    assert stats.peak_rss_bytes is None or stats.peak_rss_bytes > 0
    if stats.cpu_percent is not None:
        assert isinstance(stats.cpu_percent, float)


def test_generate_data_rows_stay_in_window():
    begin = datetime(2020, 1, 1)
    end = datetime(2020, 3, 1)
    rows = list(generate_data._generate_rows(50, begin, end, seed=123, skew=0.5))

    assert len(rows) == 50
    assert all(begin <= ts < end for ts, _, _, _ in rows)
    assert rows == list(generate_data._generate_rows(50, begin, end, seed=123, skew=0.5))


def test_generate_data_batches_rows():
    begin = datetime(2020, 1, 1)
    end = datetime(2020, 1, 2)
    batches = list(generate_data._batched(generate_data._generate_rows(5, begin, end, seed=1), 2))
    assert [len(batch) for batch in batches] == [2, 2, 1]
