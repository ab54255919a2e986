"""
ClickHouse connection factory for ch-archiver.

Each source host gets a SourceHost: a small thread-safe pool of
clickhouse-driver clients. The native protocol rejects simultaneous queries on
one connection, so every concurrent caller (the host's planning task and each
of its in-flight export units) borrows its own client; idle clients are
reused.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import queue
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence

from clickhouse_driver import Client
from clickhouse_driver import errors as ch_errors
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ch_archiver.config import Settings
from ch_archiver.errors import ConnectivityError
from ch_archiver.utils.logging import get_logger

log = get_logger(__name__)

ClientFactory = Callable[[], Any]

_TRANSIENT_ERRORS = (ch_errors.NetworkError, ch_errors.SocketTimeoutError, EOFError, OSError)


class SourceHost:
    """
    A ClickHouse host and its pool of clients.

    Implements the QueryClient protocol: `execute` borrows a client for the
    duration of one statement.
    """

    def __init__(self, address: str, factory: ClientFactory) -> None:
        self.address = address
        self._factory = factory
        self._idle: "queue.LifoQueue[Any]" = queue.LifoQueue()
        self._lock = threading.Lock()
        self._created = 0
        self._closed = False

    def _acquire(self) -> Any:
        try:
            return self._idle.get_nowait()
        except queue.Empty:
            with self._lock:
                if self._closed:
                    raise RuntimeError(f"connection pool for {self.address} is closed")
                self._created += 1
            return self._factory()

    def _release(self, client: Any) -> None:
        if self._closed:
            _disconnect(client)
        else:
            self._idle.put(client)

    @contextmanager
    def connection(self) -> Generator[Any, None, None]:
        """
        Context manager lending a client from the pool.

        Example
        -------
            with source.connection() as client:
                client.execute("SELECT 1")
        """
        client = self._acquire()
        try:
            yield client
        finally:
            self._release(client)

    def execute(self, query: str) -> List[Sequence[Any]]:
        with self.connection() as client:
            return client.execute(query)

    @property
    def created(self) -> int:
        return self._created

    def close(self) -> None:
        """Disconnect every idle client; clients in use are dropped on release."""
        with self._lock:
            self._closed = True
        while True:
            try:
                client = self._idle.get_nowait()
            except queue.Empty:
                break
            _disconnect(client)


def _disconnect(client: Any) -> None:
    disconnect = getattr(client, "disconnect", None)
    if disconnect is None:
        return
    try:
        disconnect()
    except Exception:  # noqa: BLE001
        log.debug("Ignoring error while disconnecting ClickHouse client", exc_info=True)


def client_factory(settings: Settings, host: str) -> ClientFactory:
    """Build a zero-argument factory creating clients for `host`."""

    def _make() -> Client:
        return Client(
            host=host,
            port=settings.ch_port,
            database=settings.ch_database,
            user=settings.ch_user,
            password=settings.ch_password,
            connect_timeout=settings.ch_connect_timeout,
            send_receive_timeout=settings.ch_send_receive_timeout,
        )

    return _make


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(_TRANSIENT_ERRORS),
    reraise=True,
)
def ping(source: SourceHost) -> None:
    """
    Check a host is reachable with automatic retry.

    Retries up to 3 times with exponential backoff for transient network errors.
    """
    source.execute("SELECT 1")


def connect_sources(
    settings: Settings,
    factory: Optional[Callable[[Settings, str], ClientFactory]] = None,
) -> Dict[str, SourceHost]:
    """
    Open and verify a SourceHost for every configured host.

    Raises
    ------
    ConnectivityError
        If any host cannot be reached; hosts opened so far are closed.
    """
    make_factory = factory or client_factory
    sources: Dict[str, SourceHost] = {}
    for host in settings.ch_hosts:
        source = SourceHost(host, make_factory(settings, host))
        try:
            ping(source)
        except Exception as exc:  # noqa: BLE001 - any failure here is fatal to the run
            source.close()
            close_sources(sources)
            raise ConnectivityError(
                f"cannot connect to ClickHouse at {host}:{settings.ch_port}: {exc}"
            ) from exc
        sources[host] = source
        log.info(f"initialized clickhouse connection to {host}", extra={"host": host})
    return sources


def close_sources(sources: Dict[str, SourceHost]) -> None:
    for source in sources.values():
        source.close()


__all__ = [
    "SourceHost",
    "client_factory",
    "close_sources",
    "connect_sources",
    "ping",
]
