"""共通フィクスチャ: メモリストア上の Marketplace と TestClient"""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.marketplace import Marketplace
from app.models import Role
from app.store import MemoryStore, StoreError


class FakeRedis:
    """publish だけを記録する Redis の代役"""

    def __init__(self) -> None:
        self.published: list[tuple[str, dict]] = []

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, json.loads(message)))
        return 1

    def event_types(self) -> list[str]:
        return [event["event_type"] for _, event in self.published]


class SlowStore(MemoryStore):
    """追記のたびにイベントループへ制御を返す (競合を起こしやすくする)"""

    def __init__(self, delay: float = 0.001) -> None:
        super().__init__()
        self.delay = delay

    async def append(self, kind: str, payload: dict) -> None:
        await asyncio.sleep(self.delay)
        await super().append(kind, payload)


class WriteThenYieldStore(MemoryStore):
    """書き込んだ直後にイベントループへ制御を返す (メモリ反映前にキャンセルを入れられる)"""

    def __init__(self, delay: float = 0.05) -> None:
        super().__init__()
        self.delay = delay

    async def append(self, kind: str, payload: dict) -> None:
        await super().append(kind, payload)
        await asyncio.sleep(self.delay)

    async def replace_all(self, kind: str, payloads: list[dict]) -> None:
        await super().replace_all(kind, payloads)
        await asyncio.sleep(self.delay)


class FailingStore(MemoryStore):
    """指定した kind への書き込みを StoreError で失敗させる"""

    def __init__(self, *failing_kinds: str) -> None:
        super().__init__()
        self.failing_kinds = set(failing_kinds)

    async def append(self, kind: str, payload: dict) -> None:
        if kind in self.failing_kinds:
            raise StoreError(f"disk full while writing {kind}")
        await super().append(kind, payload)

    async def replace_all(self, kind: str, payloads: list[dict]) -> None:
        if kind in self.failing_kinds:
            raise StoreError(f"disk full while writing {kind}")
        await super().replace_all(kind, payloads)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
async def market(fake_redis):
    m = Marketplace(MemoryStore(), redis=fake_redis)
    await m.load()
    return m


@pytest.fixture
def make_producer(market):
    async def _make(name: str = "Farmer Joe"):
        return await market.identity.register(name, Role.PRODUCER)
    return _make


@pytest.fixture
def make_consumer(market):
    async def _make(name: str = "Buyer Ann"):
        return await market.identity.register(name, Role.CONSUMER)
    return _make


@pytest.fixture
def client(fake_redis):
    app = create_app(Marketplace(MemoryStore(), redis=fake_redis))
    with TestClient(app) as c:
        yield c
