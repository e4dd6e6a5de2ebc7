"""
Market Service - Marketplace

ストアと各コンポーネントを所有するオブジェクト。
プロセス起動時に 1 回だけ作り、app.state 経由で渡す (グローバル変数にしない)。

    Identity ──▶ Catalog ──┐
                           ├──▶ Availability ──▶ OrderService
                 Ledger ───┘
"""

import logging

import redis.asyncio as aioredis

from . import config
from .availability import AvailabilityEngine
from .catalog import CatalogStore
from .identity import IdentityStore
from .ledger import Ledger
from .orders import OrderService
from .store import Store

logger = logging.getLogger(__name__)


class Marketplace:
    def __init__(
        self,
        store: Store,
        redis: aioredis.Redis | None = None,
        events_channel: str = config.EVENTS_CHANNEL,
    ) -> None:
        self.store = store
        self.redis = redis
        self.events_channel = events_channel
        self.identity = IdentityStore(store)
        self.catalog = CatalogStore(store, self.identity)
        self.ledger = Ledger(store)
        self.availability = AvailabilityEngine(self.catalog, self.ledger)
        self.orders = OrderService(self.identity, self.catalog, self.ledger, self.availability)

    async def load(self) -> None:
        """永続ストアから全エンティティを読み込む。"""
        await self.identity.load()
        await self.catalog.load()
        await self.ledger.load()
        logger.info("Marketplace state loaded")
