# shopdelivery/logic/tier_validator.py
"""
Validation of delivery pricing settings before they are saved.

Nothing here raises: errors come back as messages keyed by field name or by
tier index so the settings form can show them next to the inputs. The save
route refuses to write while anything is returned.
"""
import math
from typing import Dict, Optional, Sequence, TypedDict

from ..config import MAX_DELIVERY_FEE_LIMIT
from .delivery_pricing import DeliveryPricingConfig, DistanceTier

NOT_A_NUMBER = "Must be a number"

# every numeric setting; the tiers are checked by validate_tiers
AMOUNT_FIELDS = (
    "minimum_order_value",
    "small_order_surcharge",
    "least_order_value",
    "max_delivery_fee",
    "beyond_tier_fee_per_unit",
    "beyond_tier_distance_unit",
    "free_delivery_threshold",
    "free_delivery_radius",
)


class TierErrors(TypedDict, total=False):
    distance: str
    fee: str


class SettingsErrors(TypedDict, total=False):
    fields: Dict[str, str]
    tiers: Dict[int, TierErrors]


def _format_amount(amount: float) -> str:
    return f"{amount:g}"


def validate_tiers(tiers: Sequence[DistanceTier],
                   max_delivery_fee: Optional[float] = None) -> Dict[int, TierErrors]:
    """Check a tier ladder in the order the merchant entered it.

    Distances must be strictly increasing and > 0; fees must be
    non-decreasing, >= 0 and, when ``max_delivery_fee`` is given, not above it.
    NaN and infinite values are reported as not a number.
    Only indices with at least one error appear in the result.
    """
    errors: Dict[int, TierErrors] = {}

    for index, tier in enumerate(tiers):
        tier_errors: TierErrors = {}

        if index > 0:
            previous = tiers[index - 1]
            if tier.max_distance_meters <= previous.max_distance_meters:
                tier_errors["distance"] = "Must be greater than previous tier"
            if tier.fee < previous.fee:
                tier_errors["fee"] = "Must be greater than or equal to previous tier"

        if max_delivery_fee is not None and tier.fee > max_delivery_fee:
            tier_errors["fee"] = f"Must not exceed {_format_amount(max_delivery_fee)}"

        if not tier.max_distance_meters > 0:
            tier_errors["distance"] = "Must be greater than 0"

        if not tier.fee >= 0:
            tier_errors["fee"] = "Must be 0 or greater"

        if not math.isfinite(tier.max_distance_meters):
            tier_errors["distance"] = NOT_A_NUMBER
        if not math.isfinite(tier.fee):
            tier_errors["fee"] = NOT_A_NUMBER

        if tier_errors:
            errors[index] = tier_errors

    return errors


def validate_settings(config: DeliveryPricingConfig) -> SettingsErrors:
    """Check a whole settings payload; an empty result means it can be saved."""
    fields: Dict[str, str] = {}

    # Rules are written so that NaN fails them.

    # Order value layer
    if not config.minimum_order_value > 0:
        fields["minimum_order_value"] = "Must be greater than 0"
    if not config.small_order_surcharge >= 0:
        fields["small_order_surcharge"] = "Must be 0 or greater"
    if not config.least_order_value > 0:
        fields["least_order_value"] = "Must be greater than 0"
    elif config.least_order_value > config.minimum_order_value:
        fields["least_order_value"] = (
            "Least order value must be less than or equal to minimum order value"
        )

    # Distance layer
    if not config.max_delivery_fee > 0:
        fields["max_delivery_fee"] = "Must be greater than 0"
    elif config.max_delivery_fee > MAX_DELIVERY_FEE_LIMIT:
        fields["max_delivery_fee"] = (
            f"Maximum delivery fee cannot exceed {_format_amount(MAX_DELIVERY_FEE_LIMIT)}"
        )
    if not config.beyond_tier_fee_per_unit >= 0:
        fields["beyond_tier_fee_per_unit"] = "Must be 0 or greater"
    if not config.beyond_tier_distance_unit > 0:
        fields["beyond_tier_distance_unit"] = "Must be greater than 0"

    # Free delivery layer
    if not config.free_delivery_threshold >= 0:
        fields["free_delivery_threshold"] = "Must be 0 or greater"
    if not config.free_delivery_radius >= 0:
        fields["free_delivery_radius"] = "Must be 0 or greater"

    for name in AMOUNT_FIELDS:
        if not math.isfinite(getattr(config, name)):
            fields[name] = NOT_A_NUMBER

    tiers: Dict[int, TierErrors] = {}
    if config.distance_mode == "custom":
        if not config.distance_tiers:
            fields["distance_tiers"] = "At least one distance tier is required"
        else:
            tiers = validate_tiers(config.distance_tiers, config.max_delivery_fee)

    errors: SettingsErrors = {}
    if fields:
        errors["fields"] = fields
    if tiers:
        errors["tiers"] = tiers
    return errors
