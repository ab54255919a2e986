"""
Pytest configuration for ch-archiver.

Provides fixtures for:
- Settings with deterministic values for unit tests
- A recording destination filesystem
- Settings for live-cluster integration tests
"""

from __future__ import annotations

import os
from typing import Any, Callable, Dict

import pytest

from ch_archiver.config import Settings
from tests.fakes import FakeFilesystem


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    """
    Factory for Settings with deterministic, environment-independent values.
    """

    def _make(**overrides: Any) -> Settings:
        values: Dict[str, Any] = {
            "ch_hosts": ["ch-1"],
            "ch_database": "default",
            "tables": {"events": "@time"},
            "ts_begin": "1970-01-01 00:00:00",
            "ts_end": "2020-11-01 00:00:00",
            "ts_format": "%Y-%m-%d %H:%M:%S",
            "max_file_size": 10_000_000_000,
            "granularities": ["1 year", "1 month", "1 week", "1 day", "4 hour", "1 hour"],
            "hdfs_addr": "namenode:8020",
            "hdfs_dir": "/archive",
            "parallel_export": 2,
            "log_level": "DEBUG",
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def fake_filesystem() -> FakeFilesystem:
    return FakeFilesystem()


@pytest.fixture(scope="session")
def integration_settings() -> Settings:
    """
    Settings for a live ClickHouse, overridable via environment variables.
    """
    return Settings(
        ch_hosts=[os.getenv("CH_TEST_HOST", "localhost")],
        ch_port=int(os.getenv("CH_TEST_PORT", "9000")),
        ch_user=os.getenv("CH_TEST_USER", "default"),
        ch_password=os.getenv("CH_TEST_PASSWORD", ""),
        tables={"ch_archiver_smoke": "@time"},
        ts_begin="2020-01-01 00:00:00",
        ts_end="2020-11-01 00:00:00",
        max_file_size=100_000,
        log_level="DEBUG",
    )
