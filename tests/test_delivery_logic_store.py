"""
Tests for the delivery logic stores and the retry helper.

The Supabase store is exercised against a MagicMock client: only the query
chain and the row mapping are verified.
"""

from unittest.mock import MagicMock, patch

import pytest

from shopdelivery.logic.delivery_pricing import DeliveryPricingConfig
from shopdelivery.providers.delivery_logic_store import (
    DeliveryLogicStoreError,
    InMemoryDeliveryLogicStore,
    SupabaseDeliveryLogicStore,
    execute_with_retry,
    get_delivery_logic_store,
    is_timeout_or_connection_error,
)


class HttpError(Exception):
    def __init__(self, message, status):
        super().__init__(message)
        self.status = status


def _table(data):
    """Mock of client.table(...) whose select/eq/limit chain returns ``data``."""
    table = MagicMock()
    table.select.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(data=data)
    return table


class TestIsTimeoutOrConnectionError:
    @pytest.mark.parametrize("message", [
        "Request timeout", "The read operation timed out", "Network request failed",
        "Connection reset by peer", "Failed to fetch",
    ])
    def test_transient_messages(self, message):
        assert is_timeout_or_connection_error(Exception(message)) is True

    @pytest.mark.parametrize("status", [0, 408, 503, 504])
    def test_transient_statuses(self, status):
        assert is_timeout_or_connection_error(HttpError("boom", status)) is True

    def test_other_errors(self):
        assert is_timeout_or_connection_error(HttpError("duplicate key", 409)) is False
        assert is_timeout_or_connection_error(ValueError("bad value")) is False


class TestExecuteWithRetry:
    def test_returns_result(self):
        assert execute_with_retry(lambda: 42, max_retries=1) == 42

    def test_retries_transient_error_once(self):
        operation = MagicMock(side_effect=[Exception("Request timeout"), "ok"])

        assert execute_with_retry(operation, max_retries=1) == "ok"
        assert operation.call_count == 2

    def test_gives_up_after_max_retries(self):
        operation = MagicMock(side_effect=Exception("Request timeout"))

        with pytest.raises(DeliveryLogicStoreError):
            execute_with_retry(operation, max_retries=2)

        assert operation.call_count == 3

    def test_does_not_retry_other_errors(self):
        operation = MagicMock(side_effect=Exception("permission denied"))

        with pytest.raises(DeliveryLogicStoreError, match="permission denied"):
            execute_with_retry(operation, max_retries=3)

        assert operation.call_count == 1


class TestInMemoryDeliveryLogicStore:
    def test_absent_config_is_none(self, store):
        assert store.fetch_delivery_logic("shop-1") is None

    def test_save_replaces_config(self, store):
        first = DeliveryPricingConfig(minimum_order_value=300)
        second = DeliveryPricingConfig(minimum_order_value=400)

        store.save_delivery_logic("shop-1", first)
        store.save_delivery_logic("shop-1", second)

        assert store.fetch_delivery_logic("shop-1") == second

    def test_fetch_shop_returns_copy(self, store):
        shop = store.fetch_shop("shop-1")
        shop["name"] = "changed"

        assert store.fetch_shop("shop-1")["name"] == "Corner Store"
        assert store.fetch_shop("unknown") is None

    def test_ownership(self, store):
        assert store.is_shop_owner("shop-1", "user-1") is True
        assert store.is_shop_owner("shop-1", "user-2") is False
        assert store.is_shop_owner("unknown", "user-1") is False

    def test_merchants_include_owners(self):
        store = InMemoryDeliveryLogicStore(owners={"shop-1": "user-1"}, merchants=["user-3"])

        assert store.is_merchant("user-1") is True
        assert store.is_merchant("user-3") is True
        assert store.is_merchant("user-2") is False


class TestSupabaseDeliveryLogicStore:
    def test_requires_client(self):
        with patch("shopdelivery.utils.helpers.supabase", None):
            with pytest.raises(RuntimeError):
                SupabaseDeliveryLogicStore()

    def test_fetch_maps_row(self):
        client = MagicMock()
        client.table.return_value = _table([{"id": "logic-1", "shop_id": "shop-1", "minimum_order_value": 250,
                                             "distance_tiers": '[{"max_distance": 300, "fee": 25}]'}])
        store = SupabaseDeliveryLogicStore(client=client)

        config = store.fetch_delivery_logic("shop-1")

        client.table.assert_called_with("shop_delivery_logic")
        assert config.minimum_order_value == 250
        assert config.distance_tiers[0].max_distance_meters == 300

    def test_fetch_absent_returns_none(self):
        client = MagicMock()
        client.table.return_value = _table([])

        assert SupabaseDeliveryLogicStore(client=client).fetch_delivery_logic("shop-1") is None

    def test_fetch_failure_raises_store_error(self):
        client = MagicMock()
        client.table.side_effect = Exception("Request timeout")
        store = SupabaseDeliveryLogicStore(client=client, max_retries=1)

        with pytest.raises(DeliveryLogicStoreError):
            store.fetch_delivery_logic("shop-1")

        assert client.table.call_count == 2

    def test_save_updates_existing_row(self):
        config = DeliveryPricingConfig(minimum_order_value=300)
        table = _table([{"id": "logic-1"}])
        table.update.return_value.eq.return_value.execute.return_value = MagicMock(
            data=[{"id": "logic-1", "shop_id": "shop-1", **config.to_row()}]
        )
        client = MagicMock()
        client.table.return_value = table

        saved = SupabaseDeliveryLogicStore(client=client).save_delivery_logic("shop-1", config)

        table.update.assert_called_once_with(config.to_row())
        table.update.return_value.eq.assert_called_once_with("id", "logic-1")
        table.insert.assert_not_called()
        assert saved == config

    def test_save_inserts_first_row(self):
        config = DeliveryPricingConfig(minimum_order_value=300)
        table = _table([])
        table.insert.return_value.execute.return_value = MagicMock(
            data=[{"id": "logic-1", "shop_id": "shop-1", **config.to_row()}]
        )
        client = MagicMock()
        client.table.return_value = table

        saved = SupabaseDeliveryLogicStore(client=client).save_delivery_logic("shop-1", config)

        table.insert.assert_called_once_with({**config.to_row(), "shop_id": "shop-1"})
        table.update.assert_not_called()
        assert saved == config

    def test_save_without_returned_row_fails(self):
        table = _table([])
        table.insert.return_value.execute.return_value = MagicMock(data=[])
        client = MagicMock()
        client.table.return_value = table

        with pytest.raises(DeliveryLogicStoreError):
            SupabaseDeliveryLogicStore(client=client).save_delivery_logic("shop-1", DeliveryPricingConfig())

    def test_fetch_shop(self):
        client = MagicMock()
        client.table.return_value = _table([{"id": "shop-1", "name": "Corner Store",
                                             "latitude": 24.86, "longitude": 67.0}])

        shop = SupabaseDeliveryLogicStore(client=client).fetch_shop("shop-1")

        client.table.assert_called_with("shops")
        assert shop["name"] == "Corner Store"

    @pytest.mark.parametrize("account,shop,expected", [
        ([{"id": "merchant-1"}], [{"merchant_id": "merchant-1"}], True),
        ([{"id": "merchant-1"}], [{"merchant_id": "merchant-2"}], False),
        ([], [{"merchant_id": "merchant-1"}], False),
        ([{"id": "merchant-1"}], [], False),
    ])
    def test_is_shop_owner(self, account, shop, expected):
        tables = {"merchant_accounts": _table(account), "shops": _table(shop)}
        client = MagicMock()
        client.table.side_effect = lambda name: tables[name]

        assert SupabaseDeliveryLogicStore(client=client).is_shop_owner("shop-1", "user-1") is expected

    @pytest.mark.parametrize("account,expected", [([{"id": "merchant-1"}], True), ([], False)])
    def test_is_merchant(self, account, expected):
        client = MagicMock()
        client.table.return_value = _table(account)

        assert SupabaseDeliveryLogicStore(client=client).is_merchant("user-1") is expected
        client.table.assert_called_with("merchant_accounts")


def test_get_delivery_logic_store_memory_mode():
    assert isinstance(get_delivery_logic_store("memory"), InMemoryDeliveryLogicStore)
