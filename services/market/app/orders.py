"""
Market Service - Order Service

注文確定の中核。同じリスティングへの同時注文で売り越さないように
「残数確認 → 判定 → 追記」をリスティング単位の排他区間で実行する。

- 異なるリスティングへの注文は別ロックなので並行に進む
- ロック待ちが内部リトライに相当する (取得後に残数を読み直す)
- 排他区間は run_to_completion (asyncio.shield) で保護し、呼び出し元がキャンセルされても
  追記は完了か失敗のどちらかで終わる
"""

import asyncio
import logging
from datetime import datetime, timezone

from .availability import AvailabilityEngine
from .catalog import CatalogStore
from .errors import Forbidden, InsufficientQuantity, InvalidInput
from .identity import IdentityStore
from .ledger import Ledger
from .models import Listing, OrderRecord, Role, new_id
from .tasks import run_to_completion

logger = logging.getLogger(__name__)


class ListingLocks:
    """listing_id -> asyncio.Lock。初回アクセス時に作成し、削除しない。"""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, listing_id: str) -> asyncio.Lock:
        lock = self._locks.get(listing_id)
        if lock is None:
            lock = self._locks[listing_id] = asyncio.Lock()
        return lock


class OrderService:
    def __init__(
        self,
        identity: IdentityStore,
        catalog: CatalogStore,
        ledger: Ledger,
        availability: AvailabilityEngine,
    ) -> None:
        self._identity = identity
        self._catalog = catalog
        self._ledger = ledger
        self._availability = availability
        self.locks = ListingLocks()

    async def place_order(self, buyer_id: str, listing_id: str, quantity) -> OrderRecord:
        buyer = self._identity.get(buyer_id)
        if buyer is None or buyer.role is not Role.CONSUMER:
            raise Forbidden("Only buyers can place orders")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise InvalidInput("Invalid order data: quantity must be a positive integer")
        listing = self._catalog.get_listing(listing_id)

        return await run_to_completion(
            self._commit(buyer_id, listing, quantity),
            f"order of {quantity} on listing {listing.id}",
        )

    async def _commit(self, buyer_id: str, listing: Listing, quantity: int) -> OrderRecord:
        async with self.locks.lock_for(listing.id):
            stock = self._availability.stock(listing.id)
            if quantity > stock.available:
                logger.info(
                    "Order rejected for listing %s: requested=%d available=%d",
                    listing.id, quantity, stock.available,
                )
                raise InsufficientQuantity(quantity, stock.available)

            record = OrderRecord(
                id=new_id(),
                listing_id=listing.id,
                buyer_id=buyer_id,
                quantity=quantity,
                placed_at=datetime.now(timezone.utc),
            )
            await self._ledger.append(record)

        logger.info(
            "Order %s placed: listing=%s buyer=%s qty=%d remaining=%d",
            record.id, listing.id, buyer_id, quantity, stock.available - quantity,
        )
        return record
