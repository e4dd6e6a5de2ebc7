"""Order Service: 残数量の計算と売り越し防止"""

import asyncio
import random

import pytest

from app.errors import Forbidden, InsufficientQuantity, InvalidInput, NotFound
from app.marketplace import Marketplace
from app.models import Role
from app.store import ORDERS, StoreError

from conftest import FailingStore, SlowStore


async def _seed(market: Marketplace, total_quantity: int, price: float = 1.0):
    farmer = await market.identity.register("Farmer", Role.PRODUCER)
    listing = await market.catalog.create_listing(farmer.id, "Tomato", "", price, total_quantity)
    return farmer, listing


async def test_remaining_is_total_minus_committed_orders(market, make_consumer):
    _, listing = await _seed(market, 10)
    buyer = await make_consumer()

    assert market.availability.remaining(listing.id) == 10

    order = await market.orders.place_order(buyer.id, listing.id, 4)
    assert order.quantity == 4
    assert order.buyer_id == buyer.id
    assert market.availability.remaining(listing.id) == 6
    assert len(market.ledger.for_listing(listing.id)) == 1

    with pytest.raises(InsufficientQuantity) as exc_info:
        await market.orders.place_order(buyer.id, listing.id, 7)
    assert (exc_info.value.requested, exc_info.value.available) == (7, 6)
    assert market.availability.remaining(listing.id) == 6
    assert market.availability.is_available_for(listing.id, 6)
    assert not market.availability.is_available_for(listing.id, 7)


async def test_producer_cannot_order(market):
    farmer, listing = await _seed(market, 5)
    with pytest.raises(Forbidden):
        await market.orders.place_order(farmer.id, listing.id, 1)
    with pytest.raises(Forbidden):
        await market.orders.place_order("unknown-actor", listing.id, 1)


@pytest.mark.parametrize("quantity", [0, -1, 2.5, "3", True, None])
async def test_quantity_must_be_positive_integer(market, make_consumer, quantity):
    _, listing = await _seed(market, 5)
    buyer = await make_consumer()
    with pytest.raises(InvalidInput):
        await market.orders.place_order(buyer.id, listing.id, quantity)
    assert market.ledger.all() == ()


async def test_unknown_listing(market, make_consumer):
    buyer = await make_consumer()
    with pytest.raises(NotFound):
        await market.orders.place_order(buyer.id, "no-such-listing", 1)


async def test_concurrent_orders_never_oversell():
    market = Marketplace(SlowStore())
    await market.load()
    _, listing = await _seed(market, 10)
    buyers = [await market.identity.register(f"buyer-{i}", Role.CONSUMER) for i in range(25)]

    rng = random.Random(42)
    quantities = [rng.randint(1, 3) for _ in buyers]
    results = await asyncio.gather(
        *(market.orders.place_order(b.id, listing.id, q) for b, q in zip(buyers, quantities)),
        return_exceptions=True,
    )

    succeeded = [r for r in results if not isinstance(r, Exception)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert all(isinstance(e, InsufficientQuantity) for e in failed)

    sold = sum(r.quantity for r in succeeded)
    assert sold <= 10
    assert sorted(o.id for o in market.ledger.for_listing(listing.id)) == sorted(r.id for r in succeeded)
    assert market.availability.remaining(listing.id) == 10 - sold
    assert len(await market.store.load_all(ORDERS)) == len(succeeded)


async def test_concurrent_unit_orders_sell_exactly_total():
    market = Marketplace(SlowStore())
    await market.load()
    _, listing = await _seed(market, 7)
    buyer = await market.identity.register("buyer", Role.CONSUMER)

    results = await asyncio.gather(
        *(market.orders.place_order(buyer.id, listing.id, 1) for _ in range(20)),
        return_exceptions=True,
    )
    assert sum(1 for r in results if not isinstance(r, Exception)) == 7
    assert market.availability.remaining(listing.id) == 0


async def test_distinct_listings_do_not_contend(market, make_consumer):
    farmer, first = await _seed(market, 5)
    second = await market.catalog.create_listing(farmer.id, "Corn", "", 1.0, 5)
    buyer = await make_consumer()

    async with market.orders.locks.lock_for(first.id):
        order = await asyncio.wait_for(
            market.orders.place_order(buyer.id, second.id, 2), timeout=1.0
        )
    assert order.listing_id == second.id
    assert market.availability.remaining(first.id) == 5


async def test_store_failure_leaves_no_partial_state():
    market = Marketplace(FailingStore(ORDERS))
    await market.load()
    _, listing = await _seed(market, 5)
    buyer = await market.identity.register("buyer", Role.CONSUMER)

    with pytest.raises(StoreError):
        await market.orders.place_order(buyer.id, listing.id, 2)

    assert market.ledger.all() == ()
    assert market.availability.remaining(listing.id) == 5
    # ロックは解放されている
    assert not market.orders.locks.lock_for(listing.id).locked()


async def test_cancelled_caller_does_not_abandon_append():
    store = SlowStore(delay=0.05)
    market = Marketplace(store)
    await market.load()
    _, listing = await _seed(market, 5)
    buyer = await market.identity.register("buyer", Role.CONSUMER)

    task = asyncio.create_task(market.orders.place_order(buyer.id, listing.id, 3))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    await asyncio.sleep(0.1)
    assert len(market.ledger.all()) == 1
    assert len(await store.load_all(ORDERS)) == 1
    assert market.availability.remaining(listing.id) == 2


async def test_rejection_after_caller_cancelled_is_logged(market, make_consumer, caplog):
    _, listing = await _seed(market, 5)
    buyer = await make_consumer()
    lock = market.orders.locks.lock_for(listing.id)

    await lock.acquire()
    task = asyncio.create_task(market.orders.place_order(buyer.id, listing.id, 7))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    with caplog.at_level("WARNING", logger="app.tasks"):
        lock.release()
        await asyncio.sleep(0.05)

    assert any(
        "failed after its caller went away" in r.getMessage() and "InsufficientQuantity" in r.getMessage()
        for r in caplog.records
    )
    assert market.ledger.all() == ()
