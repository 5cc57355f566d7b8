"""
Tests for pricing a list of shops relative to the consumer's location.
"""

import threading
import time
from unittest.mock import MagicMock

import pytest

from shopdelivery.logic.delivery_pricing import DeliveryPricingConfig, DistanceTier
from shopdelivery.logic.shop_fees import quote_shop_delivery_fee, quote_shops_delivery_fees
from shopdelivery.providers.delivery_logic_store import DeliveryLogicStoreError, InMemoryDeliveryLogicStore

CONSUMER = (24.8607, 67.0011)
# ~500 m north of the consumer
NEARBY = (24.8652, 67.0011)


def _shop(shop_id, coordinates=NEARBY, name="Shop"):
    latitude, longitude = coordinates if coordinates else (None, None)
    return {"id": shop_id, "name": name, "latitude": latitude, "longitude": longitude}


class TestQuoteShopDeliveryFee:
    def test_quotes_distance_fee_only(self, default_config):
        distance, fee = quote_shop_delivery_fee(_shop("shop-1"), *CONSUMER, default_config)

        assert distance == pytest.approx(500, abs=5)
        assert fee == 40

    def test_missing_coordinates(self, default_config):
        assert quote_shop_delivery_fee(_shop("shop-1", coordinates=None), *CONSUMER, default_config) is None


class TestQuoteShopsDeliveryFees:
    def test_empty_list(self):
        assert quote_shops_delivery_fees([], *CONSUMER, store=MagicMock()) == []

    def test_uses_saved_config_or_defaults(self):
        custom = DeliveryPricingConfig(
            distance_mode="custom",
            distance_tiers=[DistanceTier(max_distance_meters=1000, fee=15)],
            minimum_order_value=300,
        )
        store = InMemoryDeliveryLogicStore(configs={"shop-1": custom})
        shops = [_shop("shop-1"), _shop("shop-2")]

        quoted = quote_shops_delivery_fees(shops, *CONSUMER, store=store)

        assert [shop["id"] for shop in quoted] == ["shop-1", "shop-2"]
        assert quoted[0]["delivery_fee"] == 15
        assert quoted[0]["minimum_order_value"] == 300
        assert quoted[1]["delivery_fee"] == 40
        assert quoted[1]["minimum_order_value"] == 200
        assert quoted[1]["distance_meters"] == pytest.approx(500, abs=5)

    def test_inputs_are_not_modified(self):
        shops = [_shop("shop-1")]

        quote_shops_delivery_fees(shops, *CONSUMER, store=InMemoryDeliveryLogicStore())

        assert "delivery_fee" not in shops[0]

    def test_failed_fetch_leaves_shop_unpriced(self):
        def fetch(shop_id):
            if shop_id == "shop-2":
                raise DeliveryLogicStoreError("down")
            return DeliveryPricingConfig()

        store = MagicMock()
        store.fetch_delivery_logic.side_effect = fetch
        shops = [_shop("shop-1"), _shop("shop-2")]

        quoted = quote_shops_delivery_fees(shops, *CONSUMER, store=store)

        assert quoted[0]["delivery_fee"] == 40
        assert quoted[1] == shops[1]

    def test_shop_without_coordinates_is_unpriced(self):
        shops = [_shop("shop-1", coordinates=None)]

        quoted = quote_shops_delivery_fees(shops, *CONSUMER, store=InMemoryDeliveryLogicStore())

        assert quoted == shops

    @pytest.mark.parametrize("latitude", ["n/a", "nan", float("inf")])
    def test_unusable_coordinates_do_not_affect_other_shops(self, latitude):
        shops = [_shop("shop-1"), {**_shop("shop-2"), "latitude": latitude}]

        quoted = quote_shops_delivery_fees(shops, *CONSUMER, store=InMemoryDeliveryLogicStore())

        assert quoted[0]["delivery_fee"] == 40
        assert quoted[1] == shops[1]

    def test_slow_fetch_times_out_without_blocking_others(self):
        release = threading.Event()

        def fetch(shop_id):
            if shop_id == "slow":
                release.wait(2)
            return None

        store = MagicMock()
        store.fetch_delivery_logic.side_effect = fetch
        shops = [_shop("slow"), _shop("fast")]

        try:
            quoted = quote_shops_delivery_fees(shops, *CONSUMER, store=store, timeout=0.05)
        finally:
            release.set()

        assert quoted[0] == shops[0]
        assert quoted[1]["delivery_fee"] == 40

    def test_batch_shares_one_deadline(self):
        release = threading.Event()

        def fetch(shop_id):
            release.wait(2)
            return None

        store = MagicMock()
        store.fetch_delivery_logic.side_effect = fetch
        shops = [_shop(f"slow-{i}") for i in range(5)]

        started = time.monotonic()
        try:
            quoted = quote_shops_delivery_fees(shops, *CONSUMER, store=store, timeout=0.2, max_workers=5)
        finally:
            release.set()
        elapsed = time.monotonic() - started

        assert quoted == shops
        assert elapsed < 0.6

    def test_queued_fetches_are_cancelled_after_the_deadline(self):
        release = threading.Event()

        def fetch(shop_id):
            release.wait(2)
            return None

        store = MagicMock()
        store.fetch_delivery_logic.side_effect = fetch
        shops = [_shop("slow"), _shop("queued")]

        try:
            quoted = quote_shops_delivery_fees(shops, *CONSUMER, store=store, timeout=0.05, max_workers=1)
        finally:
            release.set()

        assert quoted == shops
        store.fetch_delivery_logic.assert_called_once_with("slow")
