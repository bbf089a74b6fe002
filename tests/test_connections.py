"""Tests for the pooled target connection provider."""

import pytest

from dbmigrate.errors import ConnectionLost
from dbmigrate.services.connections import NullConnectionProvider, PooledConnectionProvider


class FakeConnection:

    def __init__(self, alive=True):
        self.alive = alive
        self.closed = False

    def ping(self, reconnect=False):
        if not self.alive:
            raise OSError("server has gone away")

    def close(self):
        self.closed = True


class TestPooledConnectionProvider:

    def test_reuses_released_connection(self):
        created = []
        pool = PooledConnectionProvider(lambda: created.append(FakeConnection()) or created[-1], max_size=2)

        first = pool.acquire()
        pool.release(first)
        second = pool.acquire()

        assert second is first
        assert len(created) == 1
        assert pool.in_use == 1

    def test_bounded_acquire_times_out(self):
        pool = PooledConnectionProvider(FakeConnection, max_size=1, acquire_timeout=0.05)
        pool.acquire()

        with pytest.raises(ConnectionLost):
            pool.acquire()

    def test_discard_closes_connection(self):
        pool = PooledConnectionProvider(FakeConnection, max_size=1)
        connection = pool.acquire()
        pool.release(connection, discard=True)

        assert connection.closed
        assert pool.acquire() is not connection

    def test_stale_idle_connection_replaced(self):
        pool = PooledConnectionProvider(FakeConnection, max_size=1)
        connection = pool.acquire()
        pool.release(connection)
        connection.alive = False

        fresh = pool.acquire()

        assert fresh is not connection
        assert connection.closed

    def test_failed_connect_frees_slot(self):
        attempts = []

        def connect():
            attempts.append(1)
            if len(attempts) == 1:
                raise OSError("refused")
            return FakeConnection()

        pool = PooledConnectionProvider(connect, max_size=1, acquire_timeout=0.05)
        with pytest.raises(OSError):
            pool.acquire()
        assert pool.acquire() is not None

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            PooledConnectionProvider(FakeConnection, max_size=0)

    def test_close_all(self):
        pool = PooledConnectionProvider(FakeConnection, max_size=2)
        connection = pool.acquire()
        pool.release(connection)
        pool.close_all()
        assert connection.closed


class TestLease:

    @pytest.mark.asyncio
    async def test_lease_returns_connection(self):
        pool = PooledConnectionProvider(FakeConnection, max_size=1)

        async with pool.lease() as lease:
            assert pool.in_use == 1
            connection = lease.connection

        assert pool.in_use == 0
        assert not connection.closed

    @pytest.mark.asyncio
    async def test_lease_discards_on_error(self):
        pool = PooledConnectionProvider(FakeConnection, max_size=1)

        with pytest.raises(RuntimeError):
            async with pool.lease() as lease:
                connection = lease.connection
                raise RuntimeError("batch failed")

        assert pool.in_use == 0
        assert connection.closed

    @pytest.mark.asyncio
    async def test_null_provider(self):
        async with NullConnectionProvider().lease() as lease:
            assert lease.connection is None
