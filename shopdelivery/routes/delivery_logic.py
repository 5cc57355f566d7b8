# shopdelivery/routes/delivery_logic.py - merchant delivery pricing settings

import json
import logging
from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from ..logic.delivery_pricing import (
    DEFAULT_PRICING_CONFIG,
    DeliveryPricingConfig,
    DistanceTier,
    apply_distance_mode,
    compute_delivery_fee,
    compute_total_delivery_fee,
    is_free_delivery_eligible,
    validate_order_floor,
)
from ..logic.tier_validator import validate_settings, validate_tiers
from ..providers.delivery_logic_store import DeliveryLogicStoreError
from ..utils.decorators import merchant_token_required, shop_owner_required
from ..utils.helpers import parse_number, round_money

logger = logging.getLogger(__name__)

delivery_logic_bp = Blueprint('delivery_logic_bp', __name__)


def _validation_error_response(error: ValidationError, message: str):
    details = json.loads(error.json(include_url=False, include_input=False))
    return jsonify({"status": "error", "error": message, "details": details}), 400


def _store_unavailable(error: DeliveryLogicStoreError):
    logger.error(f"Delivery logic store error: {error}")
    return jsonify({"status": "error", "error": "Store unavailable, try again later"}), 503


@delivery_logic_bp.route('/<shop_id>/delivery-logic', methods=['GET'])
@shop_owner_required
def get_delivery_logic(shop_id):
    """Saved settings of the shop, or the defaults used to pre-fill the form."""
    store = current_app.config["DELIVERY_LOGIC_STORE"]
    try:
        config = store.fetch_delivery_logic(shop_id)
    except DeliveryLogicStoreError as e:
        return _store_unavailable(e)

    is_default = config is None
    if is_default:
        config = DEFAULT_PRICING_CONFIG

    return jsonify({"status": "success", "data": {**config.to_row(), "is_default": is_default}})


@delivery_logic_bp.route('/<shop_id>/delivery-logic', methods=['PUT'])
@shop_owner_required
def save_delivery_logic(shop_id):
    """Replaces the shop's settings. Nothing is written while validation fails."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return jsonify({"status": "error", "error": "No data provided"}), 400

    try:
        config = DeliveryPricingConfig.with_defaults(**data)
    except ValidationError as e:
        return _validation_error_response(e, "Invalid delivery settings")

    errors = validate_settings(config)
    if errors:
        logger.info(f"Rejected delivery settings for shop {shop_id}: {errors}")
        return jsonify({"status": "error", "error": "Invalid delivery settings", "errors": errors}), 400

    config = apply_distance_mode(config)

    store = current_app.config["DELIVERY_LOGIC_STORE"]
    try:
        saved = store.save_delivery_logic(shop_id, config)
    except DeliveryLogicStoreError as e:
        return _store_unavailable(e)

    logger.info(f"Delivery settings saved for shop {shop_id} by user {request.user_id}")
    return jsonify({
        "status": "success",
        "message": "Delivery settings saved",
        "data": {**saved.to_row(), "is_default": False},
    })


@delivery_logic_bp.route('/<shop_id>/delivery-logic/preview', methods=['POST'])
@shop_owner_required
def preview_delivery_fee(shop_id):
    """
    Fee breakdown for a sample order, using either the settings being edited
    (body "config") or the saved ones. Nothing is persisted.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"status": "error", "error": "JSON body is required"}), 400

    try:
        order_subtotal = parse_number(data.get('order_subtotal', 0))
        distance_meters = parse_number(data['distance_meters'])
    except (KeyError, TypeError, ValueError):
        return jsonify({"status": "error", "error": "order_subtotal and distance_meters must be numbers"}), 400

    if order_subtotal < 0 or distance_meters < 0:
        return jsonify({"status": "error", "error": "order_subtotal and distance_meters must be 0 or greater"}), 400

    if data.get('config') is not None:
        if not isinstance(data['config'], dict):
            return jsonify({"status": "error", "error": "config must be an object"}), 400
        try:
            config = apply_distance_mode(DeliveryPricingConfig.with_defaults(**data['config']))
        except ValidationError as e:
            return _validation_error_response(e, "Invalid delivery settings")
    else:
        store = current_app.config["DELIVERY_LOGIC_STORE"]
        try:
            config = store.fetch_delivery_logic(shop_id) or DEFAULT_PRICING_CONFIG
        except DeliveryLogicStoreError as e:
            return _store_unavailable(e)

    pricing = compute_total_delivery_fee(order_subtotal, distance_meters, config)

    return jsonify({
        "status": "success",
        "data": {
            "base_fee": round_money(pricing["base_fee"]),
            "surcharge": round_money(pricing["surcharge"]),
            "free_delivery_applied": pricing["free_delivery_applied"],
            "final_fee": round_money(pricing["final_fee"]),
            # before the free delivery discount
            "distance_fee": round_money(compute_delivery_fee(distance_meters, config)),
            "free_delivery_eligible": is_free_delivery_eligible(order_subtotal, distance_meters, config),
            "order_floor": validate_order_floor(order_subtotal, config),
        }
    })


@delivery_logic_bp.route('/delivery-logic/validate-tiers', methods=['POST'])
@merchant_token_required
def validate_distance_tiers():
    """Live validation of the tier editor, run on every change in the form."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not isinstance(data.get('tiers'), list):
        return jsonify({"status": "error", "error": "tiers must be a list"}), 400

    try:
        tiers = [DistanceTier.model_validate(tier) for tier in data['tiers']]
        max_delivery_fee = data.get('max_delivery_fee')
        if max_delivery_fee is not None:
            max_delivery_fee = parse_number(max_delivery_fee)
    except ValidationError as e:
        return _validation_error_response(e, "Invalid distance tiers")
    except (TypeError, ValueError):
        return jsonify({"status": "error", "error": "max_delivery_fee must be a number"}), 400

    errors = validate_tiers(tiers, max_delivery_fee)
    return jsonify({"status": "success", "data": {"valid": not errors, "errors": errors}})
