"""
Market Service - コマンドハンドラ (CQRS の Write 側)

状態を変更する操作。ロールの認可をここで行い、
コミットが成功したら Redis Pub/Sub でイベントを発行する。

イベント発行の失敗はコミット済みの書き込みを取り消さない (ログのみ)。
"""

import json
import logging
from datetime import datetime, timezone

from pydantic import BaseModel
from redis.exceptions import RedisError

from .errors import Forbidden, InsufficientQuantity
from .events import ActorRegistered, ListingCreated, OrderPlaced, OrderRejected
from .marketplace import Marketplace
from .models import Actor, Listing, OrderRecord, Role

logger = logging.getLogger(__name__)


async def _publish(market: Marketplace, event: BaseModel) -> None:
    if market.redis is None:
        return
    event_type = type(event).__name__
    try:
        await market.redis.publish(
            market.events_channel,
            json.dumps(
                {
                    "event_type": event_type,
                    "data": event.model_dump(mode="json"),
                },
                default=str,
            ),
        )
    except RedisError:
        logger.exception("Failed to publish %s", event_type)


async def register(market: Marketplace, name, role) -> Actor:
    actor = await market.identity.register(name, role)
    await _publish(market, ActorRegistered(
        actor_id=actor.id,
        display_name=actor.display_name,
        role=actor.role,
        timestamp=datetime.now(timezone.utc),
    ))
    return actor


async def login(market: Marketplace, name, role) -> Actor:
    return await market.identity.authenticate(name, role)


async def create_listing(
    market: Marketplace,
    actor: Actor,
    name,
    description,
    unit_price,
    total_quantity,
) -> Listing:
    """出品コマンド (生産者のみ)"""
    if actor.role is not Role.PRODUCER:
        raise Forbidden("Only farmers can add products")
    listing = await market.catalog.create_listing(
        actor.id, name, description, unit_price, total_quantity
    )
    await _publish(market, ListingCreated(
        listing_id=listing.id,
        owner_id=listing.owner_id,
        name=listing.name,
        unit_price=listing.unit_price,
        total_quantity=listing.total_quantity,
        timestamp=datetime.now(timezone.utc),
    ))
    return listing


async def place_order(market: Marketplace, actor: Actor, listing_id, quantity) -> OrderRecord:
    """
    注文コマンド (購入者のみ)

    1. Order Service がリスティング単位の排他区間で残数確認と追記を行う
    2. 成功なら OrderPlaced、在庫不足なら OrderRejected を発行する
    """
    try:
        record = await market.orders.place_order(actor.id, listing_id, quantity)
    except InsufficientQuantity as e:
        await _publish(market, OrderRejected(
            listing_id=listing_id,
            buyer_id=actor.id,
            quantity_requested=e.requested,
            quantity_available=e.available,
            timestamp=datetime.now(timezone.utc),
        ))
        raise

    await _publish(market, OrderPlaced(
        order_id=record.id,
        listing_id=record.listing_id,
        buyer_id=record.buyer_id,
        quantity=record.quantity,
        timestamp=record.placed_at,
    ))
    return record
