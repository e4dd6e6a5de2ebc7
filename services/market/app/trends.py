"""
Market Service - マーケットトレンド (Read 側のみ)

リクエストごとに Catalog + Ledger から再計算する。保存はしない。

平均価格は商品名ごとに「出品行」単位で平均する。
同じ商品名を別の農家が別価格で出していれば、それらが平均される。
"""

from .catalog import CatalogStore
from .ledger import Ledger


def compute_trends(catalog: CatalogStore, ledger: Ledger) -> dict[str, dict]:
    listings = catalog.list_all()
    orders = ledger.all()

    name_of: dict[str, str] = {}
    groups: dict[str, dict] = {}
    for listing in listings:
        name_of[listing.id] = listing.name
        group = groups.setdefault(
            listing.name, {"total_price": 0.0, "count": 0, "total_ordered_quantity": 0}
        )
        group["total_price"] += listing.unit_price
        group["count"] += 1

    for order in orders:
        name = name_of.get(order.listing_id)
        if name is not None:
            groups[name]["total_ordered_quantity"] += order.quantity

    return {
        name: {
            "average_price": g["total_price"] / g["count"] if g["count"] else 0.0,
            "total_ordered_quantity": g["total_ordered_quantity"],
            "listing_count": g["count"],
        }
        for name, g in groups.items()
    }
