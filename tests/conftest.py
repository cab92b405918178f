import asyncio

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from vendor_dispatch.db import create_tables
from vendor_dispatch.store import JobStore


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}"


@pytest.fixture
def engine(db_url):
    # NullPool: no connection outlives the event loop that opened it, so
    # asyncio.run() and TestClient requests can share one database file.
    eng = create_async_engine(db_url, poolclass=NullPool)
    asyncio.run(create_tables(eng))
    yield eng
    asyncio.run(eng.dispose())


@pytest.fixture
def store(engine):
    return JobStore(async_sessionmaker(engine, expire_on_commit=False))


class RecordingQueue:
    """Queue stand-in for the HTTP tests; keeps what was pushed."""

    def __init__(self):
        self.pushed = []

    async def ping(self):
        return None

    async def push(self, message):
        self.pushed.append(message)

    async def pop(self, timeout):
        return self.pushed.pop(0) if self.pushed else None

    async def ack(self, message):
        return None

    async def recover(self):
        return []

    async def close(self):
        return None


@pytest.fixture
def recording_queue():
    return RecordingQueue()


@pytest.fixture
def client(store, recording_queue):
    from fastapi.testclient import TestClient

    from vendor_dispatch.deps import get_queue, get_store
    from vendor_dispatch.main_app import app

    # no startup/shutdown events: the test store and queue stand in for them
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_queue] = lambda: recording_queue
    yield TestClient(app)
    app.dependency_overrides.clear()


class FakeRedis:
    """Just the list commands RedisJobQueue uses, with redis-py's signatures."""

    def __init__(self, reachable=True):
        self.lists = {}
        self.reachable = reachable
        self.closed = False

    def _list(self, name):
        return self.lists.setdefault(name, [])

    async def ping(self):
        if not self.reachable:
            raise ConnectionError("connection refused")
        return True

    async def lpush(self, name, value):
        self._list(name).insert(0, value)
        return len(self._list(name))

    async def lmove(self, first_list, second_list, src="LEFT", dest="RIGHT"):
        source = self._list(first_list)
        if not source:
            return None
        value = source.pop() if src == "RIGHT" else source.pop(0)
        target = self._list(second_list)
        if dest == "LEFT":
            target.insert(0, value)
        else:
            target.append(value)
        return value

    async def blmove(self, first_list, second_list, timeout, src="LEFT", dest="RIGHT"):
        return await self.lmove(first_list, second_list, src=src, dest=dest)

    async def lrem(self, name, count, value):
        items = self._list(name)
        if value in items:
            items.remove(value)
            return 1
        return 0

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_redis():
    return FakeRedis()
