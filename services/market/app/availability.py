"""
Market Service - 在庫集約 (Availability Engine)

在庫数は保存しない。Listing の total_quantity と Ledger の注文から再構築する。
available = total_quantity - ordered で算出。
"""

from .catalog import CatalogStore
from .ledger import Ledger
from .models import Listing, OrderRecord


class ListingStock:
    def __init__(self, listing: Listing) -> None:
        self.listing_id: str = listing.id
        self.total_quantity: int = listing.total_quantity
        self.ordered: int = 0

    @property
    def available(self) -> int:
        return self.total_quantity - self.ordered

    def apply_order(self, order: OrderRecord) -> None:
        self.ordered += order.quantity

    @classmethod
    def from_orders(cls, listing: Listing, orders: tuple[OrderRecord, ...]) -> "ListingStock":
        stock = cls(listing)
        for order in orders:
            stock.apply_order(order)
        return stock


class AvailabilityEngine:
    """
    残数量の計算。ロックは取らない。

    is_available_for を注文判定に使う場合は、呼び出し側が
    リスティング単位の排他区間 (orders.ListingLocks) の中で呼ぶこと。
    """

    def __init__(self, catalog: CatalogStore, ledger: Ledger) -> None:
        self._catalog = catalog
        self._ledger = ledger

    def stock(self, listing_id: str) -> ListingStock:
        listing = self._catalog.get_listing(listing_id)
        return ListingStock.from_orders(listing, self._ledger.for_listing(listing_id))

    def remaining(self, listing_id: str) -> int:
        return self.stock(listing_id).available

    def is_available_for(self, listing_id: str, requested_qty: int) -> bool:
        return requested_qty <= self.remaining(listing_id)
