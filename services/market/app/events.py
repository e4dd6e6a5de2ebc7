"""
Market Service - イベント定義

コミット後に Redis Pub/Sub (market_events チャネル) へ発行するイベント。
イベントは過去形で命名し、不変として扱う。
"""

from datetime import datetime

from pydantic import BaseModel

from .models import Role


class ActorRegistered(BaseModel):
    """Actor が登録された (トークンは含めない)"""
    actor_id: str
    display_name: str
    role: Role
    timestamp: datetime


class ListingCreated(BaseModel):
    """生産者が出品した"""
    listing_id: str
    owner_id: str
    name: str
    unit_price: float
    total_quantity: int
    timestamp: datetime


class OrderPlaced(BaseModel):
    """注文が確定した"""
    order_id: str
    listing_id: str
    buyer_id: str
    quantity: int
    timestamp: datetime


class OrderRejected(BaseModel):
    """注文が在庫不足で拒否された (Ledger への書き込みなし)"""
    listing_id: str
    buyer_id: str
    quantity_requested: int
    quantity_available: int
    timestamp: datetime
