"""
Market Service - ドメインエラー

すべて呼び出し側 (またはビジネス状態) に起因する終端エラー。
内部でリトライはしない。HTTP ステータスへの変換は main.py で行う。
"""


class MarketError(Exception):
    """マーケットのドメインエラー基底クラス"""

    code = "market_error"

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.detail}


class InvalidInput(MarketError):
    code = "invalid_input"


class DuplicateActor(MarketError):
    code = "duplicate_actor"


class NotFound(MarketError):
    code = "not_found"


class Unauthenticated(MarketError):
    code = "unauthenticated"


class Forbidden(MarketError):
    code = "forbidden"


class InsufficientQuantity(MarketError):
    """要求数量が残り在庫を超えた (書き込みは行われていない)"""

    code = "insufficient_quantity"

    def __init__(self, requested: int, available: int) -> None:
        super().__init__(
            f"Quantity requested ({requested}) exceeds available quantity ({available})"
        )
        self.requested = requested
        self.available = available

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["requested"] = self.requested
        body["available"] = self.available
        return body
