"""
Market Service - 永続ストア

Actor / Listing / OrderRecord を種類 (kind) ごとに保存する。
インターフェースは load_all / append / replace_all の 3 つだけ。

- MemoryStore: プロセス内の dict (テスト・ローカル実行用)
- SqlStore:    SQLAlchemy (async) で market_records テーブルに JSON として保存
"""

import copy
import json
import logging
from typing import Protocol

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, UniqueConstraint, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)

ACTORS = "actors"
LISTINGS = "listings"
ORDERS = "orders"
KINDS = (ACTORS, LISTINGS, ORDERS)

metadata = MetaData()

# seq はデータベースが採番する (SQLite: INTEGER PRIMARY KEY, Postgres: SERIAL)
market_records = Table(
    "market_records",
    metadata,
    Column("seq", Integer, primary_key=True, autoincrement=True),
    Column("kind", String(32), nullable=False),
    Column("record_id", String(64), nullable=False),
    Column("payload", Text, nullable=False),
    UniqueConstraint("kind", "record_id"),
)


class StoreError(Exception):
    """永続化に失敗した。呼び出し元の操作は失敗扱い (部分適用なし)"""


class Store(Protocol):
    async def load_all(self, kind: str) -> list[dict]: ...

    async def append(self, kind: str, payload: dict) -> None: ...

    async def replace_all(self, kind: str, payloads: list[dict]) -> None: ...


def _check_kind(kind: str) -> None:
    if kind not in KINDS:
        raise ValueError(f"unknown record kind: {kind}")


class MemoryStore:
    def __init__(self) -> None:
        self._records: dict[str, list[dict]] = {kind: [] for kind in KINDS}

    async def load_all(self, kind: str) -> list[dict]:
        _check_kind(kind)
        return copy.deepcopy(self._records[kind])

    async def append(self, kind: str, payload: dict) -> None:
        _check_kind(kind)
        self._records[kind].append(copy.deepcopy(payload))

    async def replace_all(self, kind: str, payloads: list[dict]) -> None:
        _check_kind(kind)
        self._records[kind] = copy.deepcopy(payloads)


class SqlStore:
    """
    SQLAlchemy (async) バックエンド。

    event_store と同じく生 SQL + JSON ペイロード。
    seq はデータベースの自動採番で、load_all は kind ごとにその順で返す。
    replace_all は 1 トランザクションで DELETE + INSERT する。
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    async def init_schema(self) -> None:
        try:
            async with self._session_factory() as session:
                await session.run_sync(
                    lambda sync_session: metadata.create_all(sync_session.connection())
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"failed to create schema: {e}") from e

    async def load_all(self, kind: str) -> list[dict]:
        _check_kind(kind)
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    text("""
                        SELECT payload FROM market_records
                        WHERE kind = :kind
                        ORDER BY seq ASC
                    """),
                    {"kind": kind},
                )
                rows = result.fetchall()
        except SQLAlchemyError as e:
            raise StoreError(f"failed to load {kind}: {e}") from e
        return [
            json.loads(row.payload) if isinstance(row.payload, str) else row.payload
            for row in rows
        ]

    async def append(self, kind: str, payload: dict) -> None:
        _check_kind(kind)
        try:
            async with self._session_factory() as session:
                await session.execute(
                    text("""
                        INSERT INTO market_records (kind, record_id, payload)
                        VALUES (:kind, :rid, :payload)
                    """),
                    {
                        "kind": kind,
                        "rid": payload["id"],
                        "payload": json.dumps(payload, default=str),
                    },
                )
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Append to %s failed: %s", kind, e)
            raise StoreError(f"failed to append {kind} record: {e}") from e

    async def replace_all(self, kind: str, payloads: list[dict]) -> None:
        _check_kind(kind)
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        text("DELETE FROM market_records WHERE kind = :kind"),
                        {"kind": kind},
                    )
                    if payloads:
                        await session.execute(
                            text("""
                                INSERT INTO market_records (kind, record_id, payload)
                                VALUES (:kind, :rid, :payload)
                            """),
                            [
                                {
                                    "kind": kind,
                                    "rid": payload["id"],
                                    "payload": json.dumps(payload, default=str),
                                }
                                for payload in payloads
                            ],
                        )
        except SQLAlchemyError as e:
            logger.error("Replace of %s failed: %s", kind, e)
            raise StoreError(f"failed to replace {kind} records: {e}") from e
