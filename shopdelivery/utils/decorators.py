# shopdelivery/utils/decorators.py

from functools import wraps
from flask import current_app, request, jsonify
from .helpers import get_user_id_from_token
from ..providers.delivery_logic_store import DeliveryLogicStoreError


def shop_owner_required(f):
    """
    Decorator that validates the token and checks that the caller's merchant
    account owns the shop in the URL (<shop_id>).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        # Let OPTIONS through (CORS preflight)
        if request.method == 'OPTIONS':
            return jsonify(), 200

        auth_header = request.headers.get('Authorization')
        user_id, error_response = get_user_id_from_token(auth_header)

        if error_response:
            return error_response

        store = current_app.config["DELIVERY_LOGIC_STORE"]
        try:
            is_owner = store.is_shop_owner(kwargs.get('shop_id'), user_id)
        except DeliveryLogicStoreError as e:
            current_app.logger.error(f"Ownership check failed: {e}")
            return jsonify({"status": "error", "error": "Store unavailable, try again later"}), 503

        if not is_owner:
            return jsonify({"status": "error", "error": "You do not have permission to manage this shop."}), 403

        # Attach to the request for use in the routes
        request.user_id = user_id

        return f(*args, **kwargs)

    return decorated_function


def merchant_token_required(f):
    """
    Decorator for merchant routes that are not tied to one shop: validates
    the token and checks that the caller has a merchant account.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if request.method == 'OPTIONS':
            return jsonify(), 200

        auth_header = request.headers.get('Authorization')
        user_id, error_response = get_user_id_from_token(auth_header)

        if error_response:
            return error_response

        store = current_app.config["DELIVERY_LOGIC_STORE"]
        try:
            is_merchant = store.is_merchant(user_id)
        except DeliveryLogicStoreError as e:
            current_app.logger.error(f"Merchant check failed: {e}")
            return jsonify({"status": "error", "error": "Store unavailable, try again later"}), 503

        if not is_merchant:
            return jsonify({"status": "error", "error": "Access denied. Merchant account required."}), 403

        request.user_id = user_id

        return f(*args, **kwargs)

    return decorated_function
