import os
import tempfile

_tmp = tempfile.mkdtemp(prefix="gatekeeper-tests-")
os.environ.setdefault("DATABASE_URL", "sqlite:///" + os.path.join(_tmp, "gate.db"))
os.environ.setdefault("GATE_TOKEN_SECRET", "test_secret")

import httpx
import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis

from gatekeeper import config, main
from gatekeeper.db import SessionLocal


@pytest.fixture(autouse=True)
def generous_rate_limit(monkeypatch):
    monkeypatch.setattr(config, "RATE_LIMIT_CAPACITY", 1000)


@pytest_asyncio.fixture(scope="function")
async def fake_redis(monkeypatch):
    r = FakeAsyncRedis()
    await r.flushall()
    monkeypatch.setattr(main, "redis", r)
    try:
        yield r
    finally:
        await r.aclose()


@pytest_asyncio.fixture(scope="function")
async def client(fake_redis):
    transport = httpx.ASGITransport(app=main.app)
    async with httpx.AsyncClient(transport=transport, base_url="http://gate.test", timeout=10.0) as c:
        yield c


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
