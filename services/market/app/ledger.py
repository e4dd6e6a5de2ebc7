"""
Market Service - Ledger

OrderRecord の追記専用ストア。更新・削除はない。
残数量は Ledger の確定済み状態から毎回計算する (カウンタは持たない)。

リスティングごとの注文はタプルで保持し、追記時に丸ごと差し替える。
読み取り側は参照を 1 回取るだけで一貫したスナップショットになる。
"""

import logging

from .models import OrderRecord
from .store import ORDERS, Store

logger = logging.getLogger(__name__)


class Ledger:
    def __init__(self, store: Store) -> None:
        self._store = store
        self._orders: list[OrderRecord] = []
        self._by_listing: dict[str, tuple[OrderRecord, ...]] = {}

    async def load(self) -> None:
        orders = [OrderRecord.model_validate(row) for row in await self._store.load_all(ORDERS)]
        by_listing: dict[str, tuple[OrderRecord, ...]] = {}
        for order in orders:
            by_listing[order.listing_id] = by_listing.get(order.listing_id, ()) + (order,)
        self._orders = orders
        self._by_listing = by_listing
        logger.info("Loaded %d orders", len(self._orders))

    async def append(self, record: OrderRecord) -> None:
        """
        注文を確定する。Order Service 以外から呼ばないこと。

        永続化が成功してからメモリに反映する。
        """
        await self._store.append(ORDERS, record.model_dump(mode="json"))
        self._by_listing[record.listing_id] = self.for_listing(record.listing_id) + (record,)
        self._orders.append(record)

    def for_listing(self, listing_id: str) -> tuple[OrderRecord, ...]:
        return self._by_listing.get(listing_id, ())

    def all(self) -> tuple[OrderRecord, ...]:
        return tuple(self._orders)
