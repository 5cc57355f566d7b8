# shopdelivery/logic/delivery_pricing.py
"""
Delivery pricing for a shop: order value surcharge, distance tiers with
linear overflow, and the free delivery discount.

Every function here is pure. Callers load a ``DeliveryPricingConfig`` (or use
``DEFAULT_PRICING_CONFIG`` when the shop has none) and pass it in together
with the live order subtotal and distance.
"""
import json
import logging
import math
from typing import List, Literal, Optional, TypedDict

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import (
    DEFAULT_BEYOND_TIER_DISTANCE_UNIT,
    DEFAULT_BEYOND_TIER_FEE_PER_UNIT,
    DEFAULT_DISTANCE_TIER_VALUES,
    DEFAULT_FREE_DELIVERY_RADIUS,
    DEFAULT_FREE_DELIVERY_THRESHOLD,
    DEFAULT_LEAST_ORDER_VALUE,
    DEFAULT_MAX_DELIVERY_FEE,
    DEFAULT_MINIMUM_ORDER_VALUE,
    DEFAULT_SMALL_ORDER_SURCHARGE,
)

logger = logging.getLogger(__name__)

DistanceMode = Literal["auto", "custom"]


class DistanceTier(BaseModel):
    """One pricing bracket: orders up to ``max_distance_meters`` pay ``fee``."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True, allow_inf_nan=False)

    # stored as {"max_distance": ..., "fee": ...} in shop_delivery_logic.distance_tiers
    max_distance_meters: float = Field(alias="max_distance")
    fee: float


def _default_tiers() -> List[DistanceTier]:
    return [DistanceTier(max_distance_meters=d, fee=f) for d, f in DEFAULT_DISTANCE_TIER_VALUES]


DEFAULT_DISTANCE_TIERS = tuple(_default_tiers())


class DeliveryPricingConfig(BaseModel):
    """Delivery pricing settings of a single shop.

    Only shape and types are enforced here, NaN and infinity included
    (every amount must be a finite number). Business rules such as
    ``least_order_value <= minimum_order_value`` or ascending tiers are
    checked by ``tier_validator.validate_settings`` before a save, so the
    pricing functions still receive (and tolerate) badly tuned configs.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, allow_inf_nan=False)

    # Order value layer
    minimum_order_value: float = DEFAULT_MINIMUM_ORDER_VALUE
    small_order_surcharge: float = DEFAULT_SMALL_ORDER_SURCHARGE
    least_order_value: float = DEFAULT_LEAST_ORDER_VALUE

    # Distance layer
    distance_mode: DistanceMode = "auto"
    distance_tiers: List[DistanceTier] = Field(default_factory=_default_tiers)
    max_delivery_fee: float = DEFAULT_MAX_DELIVERY_FEE
    beyond_tier_fee_per_unit: float = DEFAULT_BEYOND_TIER_FEE_PER_UNIT
    beyond_tier_distance_unit: float = DEFAULT_BEYOND_TIER_DISTANCE_UNIT

    # Free delivery layer
    free_delivery_threshold: float = DEFAULT_FREE_DELIVERY_THRESHOLD
    free_delivery_radius: float = DEFAULT_FREE_DELIVERY_RADIUS

    @classmethod
    def with_defaults(cls, **overrides) -> "DeliveryPricingConfig":
        """Build a fully populated config; ``None`` values fall back to the defaults."""
        return cls(**{name: value for name, value in overrides.items() if value is not None})

    @classmethod
    def from_row(cls, row: dict) -> "DeliveryPricingConfig":
        """Map a ``shop_delivery_logic`` row to a config.

        Null columns take the default value. ``distance_tiers`` may come back
        as a JSON string; when it cannot be parsed the default ladder is used.
        Bookkeeping columns (id, shop_id, timestamps) are ignored.
        """
        values = {name: row.get(name) for name in cls.model_fields if name != "distance_tiers"}
        # empty mode column means auto
        values["distance_mode"] = row.get("distance_mode") or None
        values["distance_tiers"] = _parse_tiers(row.get("distance_tiers"))
        return cls.with_defaults(**values)

    def to_row(self) -> dict:
        return self.model_dump(by_alias=True)


def _parse_tiers(raw) -> Optional[List[DistanceTier]]:
    if raw is None:
        return None
    try:
        if isinstance(raw, str):
            raw = json.loads(raw)
        return [DistanceTier.model_validate(tier) for tier in raw]
    except (ValueError, TypeError, ValidationError) as e:
        logger.warning(f"Invalid distance_tiers in stored config, using default ladder: {e}")
        return list(DEFAULT_DISTANCE_TIERS)


DEFAULT_PRICING_CONFIG = DeliveryPricingConfig()


def apply_distance_mode(config: DeliveryPricingConfig) -> DeliveryPricingConfig:
    """In ``auto`` mode the ladder is always the built-in one."""
    if config.distance_mode == "auto":
        return config.model_copy(update={"distance_tiers": list(DEFAULT_DISTANCE_TIERS)})
    return config


class PricingResult(TypedDict):
    base_fee: float
    surcharge: float
    free_delivery_applied: bool
    final_fee: float


class OrderFloorResult(TypedDict, total=False):
    valid: bool
    message: str


def compute_surcharge(order_subtotal: float, config: DeliveryPricingConfig) -> float:
    if order_subtotal < config.minimum_order_value:
        return config.small_order_surcharge
    return 0.0


def validate_order_floor(order_subtotal: float, config: DeliveryPricingConfig) -> OrderFloorResult:
    """Checkout gate: orders below ``least_order_value`` are rejected outright."""
    if order_subtotal < config.least_order_value:
        return {
            "valid": False,
            "message": f"Minimum item value is Rs {config.least_order_value:.0f}",
        }
    return {"valid": True}


def compute_delivery_fee(distance_meters: float, config: DeliveryPricingConfig) -> float:
    """Distance fee for a delivery, capped at ``config.max_delivery_fee``.

    The first tier (ascending by distance) whose ceiling is >= the distance
    wins, so a distance sitting exactly on a boundary belongs to that tier.
    Past the last tier every started ``beyond_tier_distance_unit`` adds
    ``beyond_tier_fee_per_unit`` to the last tier's fee.
    """
    # no tiers: charge the maximum rather than deliver for free
    if not config.distance_tiers:
        return max(config.max_delivery_fee, 0.0)

    tiers = sorted(config.distance_tiers, key=lambda tier: tier.max_distance_meters)

    for tier in tiers:
        if distance_meters <= tier.max_distance_meters:
            return max(min(tier.fee, config.max_delivery_fee), 0.0)

    last_tier = tiers[-1]
    if config.beyond_tier_distance_unit <= 0:
        logger.warning(
            f"beyond_tier_distance_unit={config.beyond_tier_distance_unit} is not positive, "
            "overflow billing skipped"
        )
        return max(min(last_tier.fee, config.max_delivery_fee), 0.0)

    extra_distance = distance_meters - last_tier.max_distance_meters
    extra_units = math.ceil(extra_distance / config.beyond_tier_distance_unit)
    total_fee = last_tier.fee + extra_units * config.beyond_tier_fee_per_unit

    return max(min(total_fee, config.max_delivery_fee), 0.0)


def is_free_delivery_eligible(order_subtotal: float, distance_meters: float,
                              config: DeliveryPricingConfig) -> bool:
    return (
        order_subtotal >= config.free_delivery_threshold
        and distance_meters <= config.free_delivery_radius
    )


def compute_total_delivery_fee(order_subtotal: float, distance_meters: float,
                               config: DeliveryPricingConfig) -> PricingResult:
    """Checkout entry point: free delivery first, then distance fee plus surcharge.

    Free delivery waives both the distance fee and the small order surcharge.
    """
    if is_free_delivery_eligible(order_subtotal, distance_meters, config):
        return {
            "base_fee": 0.0,
            "surcharge": 0.0,
            "free_delivery_applied": True,
            "final_fee": 0.0,
        }

    base_fee = compute_delivery_fee(distance_meters, config)
    surcharge = compute_surcharge(order_subtotal, config)

    return {
        "base_fee": base_fee,
        "surcharge": surcharge,
        "free_delivery_applied": False,
        "final_fee": base_fee + surcharge,
    }
