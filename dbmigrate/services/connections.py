"""Target connection provider with bounded pooling."""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, List, Optional

from ..errors import ConnectionLost, MissingDependencyError
from ..models.config import TargetConnectionConfig

logger = logging.getLogger(__name__)


@dataclass
class ConnectionLease:
    """A connection checked out for one item."""
    connection: Any
    discard: bool = False  # Close instead of returning it to the pool
    pending: Optional[asyncio.Future] = None  # Call still using the connection

    def hold_until(self, call: asyncio.Future) -> None:
        """Keep the connection checked out until ``call`` finishes, then discard it."""
        self.pending = call
        self.discard = True


class TargetConnectionProvider(ABC):
    """
    Hands out target connections.

    ``acquire``/``release`` are blocking; the engine goes through the
    ``lease`` context manager, which releases on every exit path. A
    connection still in use by a timed-out call is released when that call
    returns.
    """

    @abstractmethod
    def acquire(self) -> Any:
        """Get a connection, blocking until one is available."""
        pass

    @abstractmethod
    def release(self, connection: Any, discard: bool = False) -> None:
        """Return a connection, or close it when ``discard`` is set."""
        pass

    def close_all(self) -> None:
        """Close idle connections."""
        pass

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[ConnectionLease]:
        connection = await asyncio.to_thread(self.acquire)
        lease = ConnectionLease(connection=connection)
        try:
            yield lease
        except BaseException:
            lease.discard = True
            raise
        finally:
            pending = lease.pending
            if pending is not None and not pending.done():
                logger.debug("Deferring connection release until a running call returns")
                pending.add_done_callback(lambda _: self.release(connection, discard=True))
            else:
                self.release(connection, discard=lease.discard)


class PooledConnectionProvider(TargetConnectionProvider):
    """
    Pool of at most ``max_size`` target connections.

    Connections are created lazily and reused. Idle connections that
    support ``ping`` are checked before reuse.
    """

    def __init__(
        self,
        connect: Callable[[], Any],
        max_size: int = 1,
        acquire_timeout: Optional[float] = 60.0
    ):
        """
        Initialize the pool.

        Args:
            connect: Factory returning a new DB-API connection
            max_size: Maximum connections checked out at once
            acquire_timeout: Seconds to wait for a free slot (None waits forever)
        """
        if max_size < 1:
            raise ValueError(f"Pool size must be at least 1, got {max_size}")
        self._connect = connect
        self.max_size = max_size
        self.acquire_timeout = acquire_timeout
        self._slots = threading.BoundedSemaphore(max_size)
        self._idle: List[Any] = []
        self._lock = threading.Lock()
        self._in_use = 0

    @property
    def in_use(self) -> int:
        """Number of connections currently checked out."""
        return self._in_use

    def acquire(self) -> Any:
        if not self._slots.acquire(timeout=self.acquire_timeout):
            raise ConnectionLost(
                f"Timed out after {self.acquire_timeout}s waiting for a target connection"
            )

        try:
            connection = self._take_idle()
            if connection is None:
                connection = self._connect()
                logger.debug("Opened new target connection")
        except BaseException:
            self._slots.release()
            raise

        with self._lock:
            self._in_use += 1
        return connection

    def release(self, connection: Any, discard: bool = False) -> None:
        with self._lock:
            self._in_use -= 1
            if not discard:
                self._idle.append(connection)

        if discard:
            _close_quietly(connection)
            logger.debug("Discarded target connection")

        self._slots.release()

    def close_all(self) -> None:
        with self._lock:
            idle, self._idle = self._idle, []
        for connection in idle:
            _close_quietly(connection)

    def _take_idle(self) -> Optional[Any]:
        while True:
            with self._lock:
                if not self._idle:
                    return None
                connection = self._idle.pop()

            ping = getattr(connection, "ping", None)
            if ping is None:
                return connection
            try:
                ping(reconnect=True)
                return connection
            except Exception as e:
                logger.warning(f"Dropping stale target connection: {e}")
                _close_quietly(connection)


class NullConnectionProvider(TargetConnectionProvider):
    """Provider for dry runs: hands out no connection at all."""

    def acquire(self) -> Any:
        return None

    def release(self, connection: Any, discard: bool = False) -> None:
        pass


def mysql_connection_factory(config: TargetConnectionConfig) -> Callable[[], Any]:
    """Build a factory opening MySQL connections for the given settings."""
    try:
        import mysql.connector
    except ImportError as e:
        raise MissingDependencyError("mysql-connector-python", "writing to MySQL") from e

    def connect() -> Any:
        return mysql.connector.connect(
            host=config.host,
            port=config.port,
            user=config.user,
            password=config.password,
            database=config.database,
            connection_timeout=config.connect_timeout,
            autocommit=False,
        )

    return connect


def _close_quietly(connection: Any) -> None:
    try:
        connection.close()
    except Exception as e:
        logger.debug(f"Error closing connection: {e}")
