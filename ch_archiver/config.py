"""
Configuration settings for ch-archiver.

Uses Pydantic Settings to load environment variables for the ClickHouse source
hosts, the HDFS destination, the export window and the partitioning knobs.
The model is frozen: it is built once at startup and shared read-only by every
host task and export unit.
"""
from __future__ import annotations

import re
from datetime import datetime
from functools import lru_cache
from typing import Dict, List

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ch_archiver.domain.models import TableSpec, TimeRange

_GRANULARITY_RE = re.compile(r"^\d+ (second|minute|hour|day|week|month|quarter|year)$")
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class Settings(BaseSettings):
    # ClickHouse sources
    ch_hosts: List[str] = Field(default_factory=lambda: ["localhost"], alias="CH_HOSTS", min_length=1)
    ch_port: int = Field(9000, alias="CH_PORT")
    ch_user: str = Field("default", alias="CH_USER")
    ch_password: str = Field("", alias="CH_PASSWORD")
    ch_database: str = Field("default", alias="CH_DATABASE")
    ch_connect_timeout: int = Field(10, alias="CH_CONNECT_TIMEOUT")
    ch_send_receive_timeout: int = Field(3600, alias="CH_SEND_RECEIVE_TIMEOUT")

    # Export window and partitioning
    tables: Dict[str, str] = Field(default_factory=dict, alias="EXPORT_TABLES")
    ts_begin: str = Field("1970-01-01 00:00:00", alias="EXPORT_BEGIN")
    ts_end: str = Field("2020-11-01 00:00:00", alias="EXPORT_END")
    ts_format: str = Field("%Y-%m-%d %H:%M:%S", alias="EXPORT_TS_FORMAT")
    max_file_size: int = Field(10_000_000_000, alias="MAX_FILE_SIZE", gt=0)
    granularities: List[str] = Field(
        default_factory=lambda: ["1 year", "1 month", "1 week", "1 day", "4 hour", "1 hour"],
        alias="EXPORT_GRANULARITIES",
        min_length=1,
    )
    output_format: str = Field("Parquet", alias="EXPORT_FORMAT")

    # HDFS destination
    hdfs_addr: str = Field("localhost:8020", alias="HDFS_ADDR")
    hdfs_user: str = Field("root", alias="HDFS_USER")
    hdfs_dir: str = Field("/user/root", alias="HDFS_DIR")

    # Concurrent export units per source host
    parallel_export: int = Field(4, alias="PARALLEL_EXPORT", ge=1)

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    @field_validator("granularities")
    @classmethod
    def _check_granularities(cls, value: List[str]) -> List[str]:
        normalized = [" ".join(item.split()).lower() for item in value]
        for item in normalized:
            if not _GRANULARITY_RE.match(item):
                raise ValueError(f"Unsupported granularity '{item}'")
        return normalized

    @field_validator("output_format")
    @classmethod
    def _check_output_format(cls, value: str) -> str:
        if not _IDENTIFIER_RE.match(value):
            raise ValueError(f"Invalid output format '{value}'")
        return value

    @field_validator("tables")
    @classmethod
    def _check_tables(cls, value: Dict[str, str]) -> Dict[str, str]:
        for table, column in value.items():
            if not table or not column:
                raise ValueError("Table and time column names must be non-empty")
            if "`" in column:
                raise ValueError(f"Invalid time column '{column}' for table '{table}'")
            if "/" in table:
                raise ValueError(f"Invalid table name '{table}'")
        return value

    @model_validator(mode="after")
    def _check_time_range(self) -> "Settings":
        self.time_range()
        return self

    def time_range(self) -> TimeRange:
        """Parse the configured export window into a TimeRange."""
        try:
            begin = datetime.strptime(self.ts_begin, self.ts_format)
            end = datetime.strptime(self.ts_end, self.ts_format)
        except ValueError as exc:
            raise ValueError(
                f"Cannot parse export window with format '{self.ts_format}': {exc}"
            ) from exc
        if begin >= end:
            raise ValueError(f"Export begin ({self.ts_begin}) must be earlier than end ({self.ts_end})")
        return TimeRange(begin=begin, end=end)

    def table_specs(self) -> List[TableSpec]:
        return [TableSpec(name=name, time_column=column) for name, column in self.tables.items()]

    def with_overrides(self, **overrides: object) -> "Settings":
        """
        Return a validated copy with the given fields replaced.

        None values are ignored so CLI options can be passed through as-is.
        """
        updates = {key: value for key, value in overrides.items() if value is not None}
        if not updates:
            return self
        data = self.model_dump()
        data.update(updates)
        return type(self).model_validate(data)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
