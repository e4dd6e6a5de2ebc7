"""
Market Service - エンティティ

Actor / Listing / OrderRecord はすべて不変 (frozen)。
トークンのローテーションは新しい Actor を作って差し替える。
"""

import secrets
from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict


class Role(str, Enum):
    PRODUCER = "producer"
    CONSUMER = "consumer"


class Actor(BaseModel):
    """登録ユーザー (生産者 or 購入者)"""
    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str
    role: Role
    token: str | None = None


class Listing(BaseModel):
    """生産者の出品。total_quantity は作成時に固定 (補充なし)"""
    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
    name: str
    description: str = ""
    unit_price: float
    total_quantity: int


class OrderRecord(BaseModel):
    """注文記録。Ledger に追記されたら変更・削除されない"""
    model_config = ConfigDict(frozen=True)

    id: str
    listing_id: str
    buyer_id: str
    quantity: int
    placed_at: datetime


def new_id() -> str:
    return str(uuid4())


def new_token() -> str:
    # 128 bit
    return secrets.token_hex(16)
