import sys
from pathlib import Path

import pytest
from fakeredis import FakeAsyncRedis, FakeRedis, FakeServer

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))


@pytest.fixture()
def fake_server():
    return FakeServer()


@pytest.fixture()
def redis_sync(fake_server):
    """Synchronous handle for seeding and inspecting the shared fake Redis."""
    return FakeRedis(server=fake_server, decode_responses=True)


@pytest.fixture()
def redis_async(fake_server):
    return FakeAsyncRedis(server=fake_server, decode_responses=True)
