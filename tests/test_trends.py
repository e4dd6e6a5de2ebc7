import pytest

from app.trends import compute_trends


async def test_trends_average_per_listing_and_sum_orders(market, make_producer, make_consumer):
    alice = await make_producer("Alice")
    bob = await make_producer("Bob")
    buyer = await make_consumer()
    cheap = await market.catalog.create_listing(alice.id, "Tomato", "", 2.0, 10)
    dear = await market.catalog.create_listing(bob.id, "Tomato", "", 4.0, 10)
    await market.orders.place_order(buyer.id, cheap.id, 3)
    await market.orders.place_order(buyer.id, dear.id, 5)

    trends = compute_trends(market.catalog, market.ledger)
    assert trends["Tomato"]["average_price"] == pytest.approx(3.0)
    assert trends["Tomato"]["total_ordered_quantity"] == 8
    assert trends["Tomato"]["listing_count"] == 2


async def test_trends_keep_names_apart_and_include_unsold(market, make_producer, make_consumer):
    farmer = await make_producer()
    buyer = await make_consumer()
    corn = await market.catalog.create_listing(farmer.id, "Corn", "", 1.5, 4)
    await market.catalog.create_listing(farmer.id, "Kale", "", 3.0, 4)
    await market.orders.place_order(buyer.id, corn.id, 4)

    trends = compute_trends(market.catalog, market.ledger)
    assert trends["Corn"] == {"average_price": 1.5, "total_ordered_quantity": 4, "listing_count": 1}
    assert trends["Kale"] == {"average_price": 3.0, "total_ordered_quantity": 0, "listing_count": 1}


async def test_trends_empty_market(market):
    assert compute_trends(market.catalog, market.ledger) == {}
