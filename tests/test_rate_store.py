"""
Tests for quote persistence.
"""
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from shipquote.core.redis_client import rate_key
from shipquote.services.rate_store import (
    InMemoryRateStore,
    QuoteCache,
    RedisRateStore,
    shipment_digest,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestInMemoryRateStore:

    @pytest.mark.asyncio
    async def test_expiry(self):
        clock = FakeClock()
        store = InMemoryRateStore(clock=clock)
        await store.set("k", "v", 30)

        clock.now += 29
        assert await store.get("k") == "v"

        clock.now += 1
        assert await store.get("k") is None

    @pytest.mark.asyncio
    async def test_expired_entries_are_purged_on_write(self):
        clock = FakeClock()
        store = InMemoryRateStore(clock=clock)

        for i in range(1000):
            await store.set(f"quote-{i}", "v", 10)
            clock.now += 60

        assert len(store._data) == 1
        assert await store.get("quote-999") is None

    @pytest.mark.asyncio
    async def test_live_entries_survive_purge(self):
        clock = FakeClock()
        store = InMemoryRateStore(clock=clock)
        await store.set("old", "v", 100)
        clock.now += 50
        await store.set("new", "v", 100)

        assert await store.get("old") == "v"
        assert len(store._data) == 2

    @pytest.mark.asyncio
    async def test_non_positive_ttl_is_not_stored(self):
        store = InMemoryRateStore()
        await store.set("k", "v", 0)
        assert await store.get("k") is None


class TestRedisRateStore:

    @pytest.mark.asyncio
    async def test_uses_setex(self):
        client = AsyncMock()
        await RedisRateStore(client).set("k", "v", 60)
        client.setex.assert_awaited_once_with("k", 60, "v")


class TestQuoteCache:

    @pytest.mark.asyncio
    async def test_quote_round_trip_under_merchant_key(self, quote_cache, rate_store, make_quote):
        quote = make_quote(amount="12.34", surcharges=[], display_message="Fast")

        assert await quote_cache.save_quotes("m1", [quote], 60) == [quote]

        assert await rate_store.get(rate_key("m1", quote.id)) is not None
        assert await quote_cache.get_quote("m1", quote.id) == quote
        assert await quote_cache.get_quote("m2", quote.id) is None

    @pytest.mark.asyncio
    async def test_expired_quote_is_gone(self, make_quote):
        clock = FakeClock()
        cache = QuoteCache(InMemoryRateStore(clock=clock))
        quote = make_quote()
        await cache.save_quotes("m1", [quote], 1800)

        clock.now += 1800
        assert await cache.get_quote("m1", quote.id) is None

    @pytest.mark.asyncio
    async def test_store_failures_degrade(self, make_quote, shipment):
        store = AsyncMock()
        store.set.side_effect = ConnectionError("redis down")
        store.get.side_effect = ConnectionError("redis down")
        cache = QuoteCache(store)

        assert await cache.save_quotes("m1", [make_quote()], 60) == []
        assert await cache.get_quote("m1", "anything") is None
        assert await cache.save_rate_set("m1", shipment, [make_quote()], 60) is False
        assert await cache.get_rate_set("m1", shipment) == []

    @pytest.mark.asyncio
    async def test_undecodable_quote_is_a_miss(self, quote_cache, rate_store):
        await rate_store.set(rate_key("m1", "q1"), "{not json", 60)
        assert await quote_cache.get_quote("m1", "q1") is None


class TestShipmentDigest:

    def test_equal_amounts_hash_the_same(self, make_shipment):
        a = make_shipment(total_order_value=Decimal("50"))
        b = make_shipment(total_order_value=Decimal("50.00"))
        assert shipment_digest(a) == shipment_digest(b)

    def test_destination_changes_digest(self, make_shipment, destination):
        from dataclasses import replace

        moved = make_shipment(destination=replace(destination, postal_code="10001"))
        assert shipment_digest(moved) != shipment_digest(make_shipment())
