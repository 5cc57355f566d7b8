from flask import Blueprint, current_app, request, jsonify
import logging

from ..logic.delivery_pricing import (
    DEFAULT_PRICING_CONFIG,
    compute_total_delivery_fee,
    validate_order_floor,
)
from ..logic.shop_fees import quote_shops_delivery_fees
from ..providers.delivery_logic_store import DeliveryLogicStoreError
from ..utils.distance_utils import distance_between
from ..utils.helpers import parse_number, round_money, serialize_data

logger = logging.getLogger(__name__)

delivery_calculator_bp = Blueprint('delivery_calculator', __name__)


def _parse_coordinates(data):
    """Returns (latitude, longitude) of the client or raises ValueError."""
    latitude = data.get('client_latitude')
    longitude = data.get('client_longitude')
    if latitude is None or longitude is None:
        raise ValueError("Client coordinates are required")
    return parse_number(latitude), parse_number(longitude)


@delivery_calculator_bp.route('/calculate_fee', methods=['POST'])
def calculate_delivery_fee():
    """Checkout fee for one shop: distance fee, small order surcharge and free delivery."""
    logger.info("=== START calculate_delivery_fee ===")

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"status": "error", "error": "JSON body is required"}), 400

    logger.info(f"Received: {data}")

    shop_id = data.get('shop_id')
    if not shop_id:
        logger.warning("shop_id missing")
        return jsonify({"status": "error", "error": "shop_id is required"}), 400

    try:
        client_latitude, client_longitude = _parse_coordinates(data)
        order_subtotal = parse_number(data.get('order_subtotal', 0))
    except (TypeError, ValueError) as e:
        logger.warning(f"Invalid input: {e}")
        return jsonify({"status": "error", "error": "Invalid data provided"}), 400

    if order_subtotal < 0:
        return jsonify({"status": "error", "error": "order_subtotal must be 0 or greater"}), 400

    store = current_app.config["DELIVERY_LOGIC_STORE"]
    try:
        shop = store.fetch_shop(shop_id)
        if not shop:
            logger.error(f"Shop not found: {shop_id}")
            return jsonify({"status": "error", "error": "Shop not found"}), 404

        if shop.get('latitude') is None or shop.get('longitude') is None:
            logger.error(f"Shop {shop_id} has no coordinates")
            return jsonify({"status": "error", "error": "Shop coordinates not registered"}), 400

        config = store.fetch_delivery_logic(shop_id)
    except DeliveryLogicStoreError as e:
        logger.error(f"Store error while calculating fee: {e}")
        return jsonify({"status": "error", "error": "Store unavailable, try again later"}), 503

    if config is None:
        logger.info(f"Shop {shop_id} has no delivery logic, using defaults")
        config = DEFAULT_PRICING_CONFIG

    try:
        shop_latitude, shop_longitude = parse_number(shop['latitude']), parse_number(shop['longitude'])
    except (TypeError, ValueError) as e:
        logger.error(f"Shop {shop_id} has invalid coordinates: {e}")
        return jsonify({"status": "error", "error": "Shop coordinates not registered"}), 400

    distance_meters = distance_between(client_latitude, client_longitude, shop_latitude, shop_longitude)
    logger.info(f"Distance: {distance_meters:.0f} m")

    pricing = compute_total_delivery_fee(order_subtotal, distance_meters, config)
    order_floor = validate_order_floor(order_subtotal, config)

    result = {
        "status": "success",
        "data": {
            "base_fee": round_money(pricing["base_fee"]),
            "surcharge": round_money(pricing["surcharge"]),
            "free_delivery_applied": pricing["free_delivery_applied"],
            "final_fee": round_money(pricing["final_fee"]),
            "distance_meters": round(distance_meters, 2),
            "order_floor": order_floor,
            "shop_name": shop.get('name', ''),
        }
    }

    logger.info(f"Result: {result}")
    return jsonify(result), 200


@delivery_calculator_bp.route('/shops/fees', methods=['POST'])
def calculate_shops_delivery_fees():
    """Distance fee of every shop in a listing, relative to the client's location."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"status": "error", "error": "JSON body is required"}), 400

    try:
        client_latitude, client_longitude = _parse_coordinates(data)
    except (TypeError, ValueError):
        return jsonify({"status": "error", "error": "Client coordinates are required"}), 400

    shops = data.get('shops')
    if not isinstance(shops, list) or not all(isinstance(shop, dict) and shop.get('id') for shop in shops):
        return jsonify({"status": "error", "error": "shops must be a list of shops with an id"}), 400

    store = current_app.config["DELIVERY_LOGIC_STORE"]
    quoted = quote_shops_delivery_fees(shops, client_latitude, client_longitude, store)

    return jsonify({"status": "success", "data": serialize_data(quoted)}), 200
