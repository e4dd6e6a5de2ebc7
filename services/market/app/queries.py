"""
Market Service - クエリハンドラ (CQRS の Read 側)

ロックは取らない。Catalog / Ledger のスナップショットから
フロントエンド向けの dict を組み立てる。
"""

from .marketplace import Marketplace
from .models import Actor, Listing, Role


def _listing_view(market: Marketplace, listing: Listing) -> dict:
    return {
        "id": listing.id,
        "farmer_id": listing.owner_id,
        "farmer_name": market.identity.display_name_of(listing.owner_id),
        "name": listing.name,
        "description": listing.description,
        "price": listing.unit_price,
        "quantity": listing.total_quantity,
        "quantity_available": market.availability.remaining(listing.id),
    }


def list_products(market: Marketplace) -> list[dict]:
    """在庫が残っている出品だけを返す。"""
    views = [_listing_view(market, listing) for listing in market.catalog.list_all()]
    return [view for view in views if view["quantity_available"] > 0]


def get_product(market: Marketplace, listing_id: str) -> dict:
    return _listing_view(market, market.catalog.get_listing(listing_id))


def list_orders(market: Marketplace, actor: Actor) -> list[dict]:
    """
    注文履歴

    - 購入者: 自分の注文 + 商品名 / 農家 ID
    - 生産者: 自分の出品に対する全注文 + 購入者名 / 商品名
    """
    listings = {listing.id: listing for listing in market.catalog.list_all()}
    orders = market.ledger.all()

    if actor.role is Role.CONSUMER:
        result = []
        for order in orders:
            if order.buyer_id != actor.id:
                continue
            listing = listings.get(order.listing_id)
            result.append({
                **order.model_dump(mode="json"),
                "product_name": listing.name if listing else "Unknown",
                "farmer_id": listing.owner_id if listing else None,
            })
        return result

    own = {lid for lid, listing in listings.items() if listing.owner_id == actor.id}
    return [
        {
            **order.model_dump(mode="json"),
            "buyer_name": market.identity.display_name_of(order.buyer_id),
            "product_name": listings[order.listing_id].name,
        }
        for order in orders
        if order.listing_id in own
    ]
