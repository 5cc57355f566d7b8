# shopdelivery/providers/delivery_logic_store.py
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, TypeVar

from ..config import DELIVERY_LOGIC_STORE, SUPABASE_MAX_RETRIES
from ..logic.delivery_pricing import DeliveryPricingConfig

logger = logging.getLogger(__name__)

TABLE = "shop_delivery_logic"

T = TypeVar("T")


class DeliveryLogicStoreError(Exception):
    """The store could not be reached or rejected the query."""


def is_timeout_or_connection_error(error: Exception) -> bool:
    message = str(error).lower()
    code = str(getattr(error, "code", "") or "").lower()

    if (
        "timeout" in message
        or "timed out" in message
        or "network" in message
        or "connection" in message
        or "failed to fetch" in message
        or code in ("timeout", "network_error", "fetch_error")
    ):
        return True

    # 0 = no response at all
    status = getattr(error, "status", None)
    if status is None:
        status = getattr(error, "status_code", None)
    return status in (0, 408, 503, 504)


def execute_with_retry(operation: Callable[[], T], max_retries: int = SUPABASE_MAX_RETRIES) -> T:
    """Run a query, retrying timeouts/connection errors up to ``max_retries`` times."""
    for attempt in range(max_retries + 1):
        try:
            return operation()
        except Exception as e:
            if is_timeout_or_connection_error(e) and attempt < max_retries:
                logger.warning(
                    f"Timeout/connection error (attempt {attempt + 1}/{max_retries + 1}), retrying: {e}"
                )
                continue
            logger.error(f"Store query failed: {e}")
            raise DeliveryLogicStoreError(str(e)) from e


class DeliveryLogicStore(ABC):
    @abstractmethod
    def fetch_delivery_logic(self, shop_id: str) -> Optional[DeliveryPricingConfig]:
        """Config of the shop, or None when it never saved one."""
        raise NotImplementedError()

    @abstractmethod
    def save_delivery_logic(self, shop_id: str, config: DeliveryPricingConfig) -> DeliveryPricingConfig:
        """Replace the shop's config wholesale (insert on first save)."""
        raise NotImplementedError()

    @abstractmethod
    def fetch_shop(self, shop_id: str) -> Optional[dict]:
        """Shop with at least id, name, latitude and longitude."""
        raise NotImplementedError()

    @abstractmethod
    def is_merchant(self, user_id: str) -> bool:
        """True when the user has a merchant account."""
        raise NotImplementedError()

    @abstractmethod
    def is_shop_owner(self, shop_id: str, user_id: str) -> bool:
        raise NotImplementedError()


class SupabaseDeliveryLogicStore(DeliveryLogicStore):
    """
    Tables used:
      - shop_delivery_logic (one row per shop, distance_tiers as JSONB)
      - shops (id, name, latitude, longitude, merchant_id)
      - merchant_accounts (id, user_id)
    """

    def __init__(self, client=None, max_retries: int = SUPABASE_MAX_RETRIES):
        if client is None:
            from ..utils.helpers import supabase as client
        if client is None:
            raise RuntimeError("Supabase client missing, check SUPABASE_URL and SUPABASE_SERVICE_KEY.")
        self.client = client
        self.max_retries = max_retries

    def fetch_delivery_logic(self, shop_id: str) -> Optional[DeliveryPricingConfig]:
        logger.debug(f"fetch_delivery_logic shop_id={shop_id}")
        response = execute_with_retry(
            lambda: self.client.table(TABLE).select("*").eq("shop_id", shop_id).limit(1).execute(),
            self.max_retries,
        )
        if not response.data:
            return None
        return DeliveryPricingConfig.from_row(response.data[0])

    def save_delivery_logic(self, shop_id: str, config: DeliveryPricingConfig) -> DeliveryPricingConfig:
        row = config.to_row()

        existing = execute_with_retry(
            lambda: self.client.table(TABLE).select("id").eq("shop_id", shop_id).limit(1).execute(),
            self.max_retries,
        )

        # writes are not retried
        if existing.data:
            logic_id = existing.data[0]["id"]
            logger.info(f"Updating delivery logic {logic_id} of shop {shop_id}")
            response = execute_with_retry(
                lambda: self.client.table(TABLE).update(row).eq("id", logic_id).execute(), 0
            )
        else:
            logger.info(f"Creating delivery logic for shop {shop_id}")
            response = execute_with_retry(
                lambda: self.client.table(TABLE).insert({**row, "shop_id": shop_id}).execute(), 0
            )

        if not response.data:
            raise DeliveryLogicStoreError(f"Saving delivery logic of shop {shop_id} returned no row")
        return DeliveryPricingConfig.from_row(response.data[0])

    def fetch_shop(self, shop_id: str) -> Optional[dict]:
        response = execute_with_retry(
            lambda: self.client.table("shops")
            .select("id, name, latitude, longitude")
            .eq("id", shop_id)
            .limit(1)
            .execute(),
            self.max_retries,
        )
        if not response.data:
            return None
        return response.data[0]

    def _merchant_account_id(self, user_id: str) -> Optional[str]:
        account = execute_with_retry(
            lambda: self.client.table("merchant_accounts").select("id").eq("user_id", user_id).limit(1).execute(),
            self.max_retries,
        )
        if not account.data:
            return None
        return account.data[0]["id"]

    def is_merchant(self, user_id: str) -> bool:
        return self._merchant_account_id(user_id) is not None

    def is_shop_owner(self, shop_id: str, user_id: str) -> bool:
        merchant_id = self._merchant_account_id(user_id)
        if merchant_id is None:
            return False

        shop = execute_with_retry(
            lambda: self.client.table("shops").select("merchant_id").eq("id", shop_id).limit(1).execute(),
            self.max_retries,
        )
        if not shop.data:
            return False

        return shop.data[0]["merchant_id"] == merchant_id


class InMemoryDeliveryLogicStore(DeliveryLogicStore):
    """Store for local development and tests: nothing leaves the process."""

    def __init__(self, shops=None, owners: Optional[Dict[str, str]] = None,
                 configs: Optional[Dict[str, DeliveryPricingConfig]] = None, merchants=None):
        self.shops = {shop["id"]: dict(shop) for shop in shops or []}
        # shop_id -> user_id of the owning merchant
        self.owners = dict(owners or {})
        # user ids with a merchant account; every owner has one
        self.merchants = set(merchants or ()) | set(self.owners.values())
        self.configs = dict(configs or {})
        self._lock = threading.Lock()

    def fetch_delivery_logic(self, shop_id: str) -> Optional[DeliveryPricingConfig]:
        with self._lock:
            return self.configs.get(shop_id)

    def save_delivery_logic(self, shop_id: str, config: DeliveryPricingConfig) -> DeliveryPricingConfig:
        with self._lock:
            self.configs[shop_id] = config
        return config

    def fetch_shop(self, shop_id: str) -> Optional[dict]:
        with self._lock:
            shop = self.shops.get(shop_id)
        return dict(shop) if shop else None

    def is_merchant(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self.merchants

    def is_shop_owner(self, shop_id: str, user_id: str) -> bool:
        with self._lock:
            return shop_id in self.shops and self.owners.get(shop_id) == user_id


def get_delivery_logic_store(mode: str = DELIVERY_LOGIC_STORE) -> DeliveryLogicStore:
    if mode == "memory":
        logger.info("Using in-memory delivery logic store.")
        return InMemoryDeliveryLogicStore()
    logger.info("Using Supabase delivery logic store.")
    return SupabaseDeliveryLogicStore()
