"""
Market Service - FastAPI エントリーポイント

農家 (producer) と購入者 (consumer) をつなぐマーケットプレイス。
Command (POST) と Query (GET) のエンドポイントを分離し、
認証が必要な操作は Bearer トークンで Actor を解決する。
"""

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, StrictFloat, StrictInt
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from . import commands, config, queries
from .errors import (
    DuplicateActor,
    Forbidden,
    InsufficientQuantity,
    InvalidInput,
    MarketError,
    NotFound,
    Unauthenticated,
)
from .logging_config import setup_logging
from .marketplace import Marketplace
from .models import Actor
from .store import SqlStore, StoreError
from .trends import compute_trends

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    InvalidInput: 400,
    DuplicateActor: 409,
    NotFound: 404,
    Unauthenticated: 401,
    Forbidden: 403,
    InsufficientQuantity: 409,
}


# ── Request Models ───────────────────────────────


class Credentials(BaseModel):
    name: str
    role: str


class CreateListingRequest(BaseModel):
    name: str
    description: str = ""
    price: StrictFloat | StrictInt
    quantity: StrictInt


class PlaceOrderRequest(BaseModel):
    listing_id: str
    quantity: StrictInt


# ── Dependencies ─────────────────────────────────

bearer = HTTPBearer(auto_error=False)


async def get_market(request: Request) -> Marketplace:
    return request.app.state.market


async def current_actor(
    market: Marketplace = Depends(get_market),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
) -> Actor:
    if credentials is None:
        raise Unauthenticated("No token provided")
    return market.identity.resolve_token(credentials.credentials)


# ── Application ──────────────────────────────────


def create_app(market: Marketplace | None = None) -> FastAPI:
    """
    market を渡すとそれを使う (テスト用)。
    渡さなければ DATABASE_URL / REDIS_URL から組み立てる。
    """
    setup_logging(config.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if market is not None:
            app.state.market = market
            await market.load()
            yield
            return

        engine = create_async_engine(config.DATABASE_URL, echo=False)
        async_session = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        store = SqlStore(async_session)
        await store.init_schema()
        redis_pool = (
            aioredis.from_url(config.REDIS_URL, decode_responses=True)
            if config.REDIS_URL
            else None
        )
        app.state.market = Marketplace(store, redis=redis_pool)
        await app.state.market.load()
        logger.info("Market service started")
        yield
        if redis_pool is not None:
            await redis_pool.aclose()
        await engine.dispose()

    app = FastAPI(title="Market Service", lifespan=lifespan)

    # CORS 設定 (フロントエンドの dev server からのアクセスを許可)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MarketError)
    async def market_error_handler(request: Request, exc: MarketError):
        return JSONResponse(status_code=ERROR_STATUS.get(type(exc), 400), content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        body = InvalidInput("Invalid request data").to_dict()
        body["errors"] = [
            {"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content=body)

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=503,
            content={"error": "storage_unavailable", "detail": "Storage is unavailable"},
        )

    # ── Identity ─────────────────────────────────

    @app.post("/register")
    async def cmd_register(req: Credentials, market: Marketplace = Depends(get_market)):
        """Actor 登録。トークン付きで返す。"""
        return await commands.register(market, req.name, req.role)

    @app.post("/login")
    async def cmd_login(req: Credentials, market: Marketplace = Depends(get_market)):
        """ログイン (パスワードなし)。トークンをローテーションして返す。"""
        return await commands.login(market, req.name, req.role)

    # ── Catalog ──────────────────────────────────

    @app.get("/products")
    async def query_list_products(market: Marketplace = Depends(get_market)):
        return queries.list_products(market)

    @app.get("/products/{listing_id}")
    async def query_get_product(listing_id: str, market: Marketplace = Depends(get_market)):
        return queries.get_product(market, listing_id)

    @app.post("/products")
    async def cmd_create_listing(
        req: CreateListingRequest,
        actor: Actor = Depends(current_actor),
        market: Marketplace = Depends(get_market),
    ):
        """出品 (生産者のみ)"""
        return await commands.create_listing(
            market, actor, req.name, req.description, req.price, req.quantity
        )

    # ── Orders ───────────────────────────────────

    @app.post("/orders")
    async def cmd_place_order(
        req: PlaceOrderRequest,
        actor: Actor = Depends(current_actor),
        market: Marketplace = Depends(get_market),
    ):
        """注文 (購入者のみ)"""
        return await commands.place_order(market, actor, req.listing_id, req.quantity)

    @app.get("/orders")
    async def query_list_orders(
        actor: Actor = Depends(current_actor),
        market: Marketplace = Depends(get_market),
    ):
        return queries.list_orders(market, actor)

    # ── Market Trends ────────────────────────────

    @app.get("/market-trends")
    async def query_market_trends(market: Marketplace = Depends(get_market)):
        return compute_trends(market.catalog, market.ledger)

    @app.get("/", response_class=PlainTextResponse)
    async def root():
        return "Market Service API is running."

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "market-service"}

    return app


app = create_app()
