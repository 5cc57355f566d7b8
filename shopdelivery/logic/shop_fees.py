# shopdelivery/logic/shop_fees.py
"""
Delivery fees shown on shop listings.

Listing fees are the distance fee only: the order subtotal is unknown until
checkout, so no surcharge and no free delivery discount are applied here.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import List, Optional, Tuple

from ..config import SHOP_FEE_FETCH_TIMEOUT_SECONDS, SHOP_FEE_MAX_WORKERS
from ..utils.distance_utils import distance_between
from ..utils.helpers import parse_number
from .delivery_pricing import DEFAULT_PRICING_CONFIG, DeliveryPricingConfig, compute_delivery_fee

logger = logging.getLogger(__name__)


def quote_shop_delivery_fee(shop: dict, consumer_latitude: float, consumer_longitude: float,
                            config: DeliveryPricingConfig) -> Optional[Tuple[float, float]]:
    """Returns (distance_meters, fee), or None when the shop has no coordinates.

    Coordinates that are not finite numbers raise ValueError.
    """
    if shop.get("latitude") is None or shop.get("longitude") is None:
        return None

    distance_meters = distance_between(
        parse_number(consumer_latitude), parse_number(consumer_longitude),
        parse_number(shop["latitude"]), parse_number(shop["longitude"]),
    )
    return distance_meters, compute_delivery_fee(distance_meters, config)


def quote_shops_delivery_fees(shops: List[dict], consumer_latitude: float, consumer_longitude: float,
                              store, timeout: float = SHOP_FEE_FETCH_TIMEOUT_SECONDS,
                              max_workers: int = SHOP_FEE_MAX_WORKERS) -> List[dict]:
    """Annotate shops with delivery_fee, distance_meters and minimum_order_value.

    Configs are fetched in parallel and the whole batch shares one deadline,
    ``timeout`` seconds after the first fetch is submitted. A shop whose fetch
    fails, misses the deadline or whose coordinates are unusable is returned
    as-is; a shop without a saved config is priced with the default config.
    Order is preserved, inputs are not modified.
    """
    if not shops:
        return []

    executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(shops))))
    try:
        deadline = time.monotonic() + timeout
        futures = [executor.submit(store.fetch_delivery_logic, shop["id"]) for shop in shops]

        quoted = []
        for shop, future in zip(shops, futures):
            try:
                config = future.result(timeout=max(0.0, deadline - time.monotonic()))
            except FutureTimeoutError:
                logger.warning(f"Delivery logic fetch timed out for shop {shop['id']} ({shop.get('name')})")
                quoted.append(shop)
                continue
            except Exception as e:
                logger.warning(f"Failed to fetch delivery logic for shop {shop['id']} ({shop.get('name')}): {e}")
                quoted.append(shop)
                continue

            if config is None:
                config = DEFAULT_PRICING_CONFIG

            try:
                quote = quote_shop_delivery_fee(shop, consumer_latitude, consumer_longitude, config)
            except (TypeError, ValueError) as e:
                logger.warning(f"Shop {shop['id']} ({shop.get('name')}) has invalid coordinates: {e}")
                quoted.append(shop)
                continue

            if quote is None:
                logger.warning(f"Shop {shop['id']} ({shop.get('name')}) missing coordinates")
                quoted.append(shop)
                continue

            distance_meters, fee = quote
            logger.info(f"Shop {shop['id']} ({shop.get('name')}): distance={distance_meters:.0f}m, fee=Rs {fee:.0f}")
            quoted.append({
                **shop,
                "delivery_fee": fee,
                "distance_meters": distance_meters,
                "minimum_order_value": config.minimum_order_value,
            })
        return quoted
    finally:
        # fetches still queued after the deadline never start
        executor.shutdown(wait=False, cancel_futures=True)
