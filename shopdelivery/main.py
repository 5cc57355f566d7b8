import os
import re
import logging
from datetime import datetime
from flask import Flask, jsonify, request, make_response
from flask_cors import CORS
from dotenv import load_dotenv

# --- Logging ---
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(name)s - %(message)s')
logger = logging.getLogger(__name__)

load_dotenv()

# --- Blueprints ---
from .routes.delivery_calculator import delivery_calculator_bp
from .routes.delivery_logic import delivery_logic_bp
from .providers.delivery_logic_store import get_delivery_logic_store

# ---------------- CORS ----------------
LOCAL_HOSTS = [
    "http://localhost:3000", "http://127.0.0.1:3000",
    "http://localhost:8081", "http://127.0.0.1:8081",
]

# Extra origins from the environment (comma separated)
EXTRA = [o.strip() for o in os.environ.get("EXTRA_ALLOWED_ORIGINS", "").split(",") if o.strip()]

ALLOWED_ORIGINS = set(LOCAL_HOSTS + EXTRA)


def is_allowed_origin(origin: str) -> bool:
    if not origin:
        return False
    if origin in ALLOWED_ORIGINS:
        return True
    # any localhost port
    if re.match(r"^http://localhost:\d+$", origin) or re.match(r"^http://127\.0\.0\.1:\d+$", origin):
        return True
    return False


def create_app(store=None):
    app = Flask(__name__)
    app.url_map.strict_slashes = False

    app.config["DELIVERY_LOGIC_STORE"] = store if store is not None else get_delivery_logic_store()

    CORS(
        app,
        resources={r"/api/*": {"origins": "*"}},
        supports_credentials=True,
        allow_headers=["Content-Type", "Authorization"],
        methods=["GET", "POST", "PUT", "OPTIONS"]
    )

    @app.before_request
    def handle_preflight():
        if request.method == "OPTIONS":
            origin = request.headers.get("Origin", "")
            resp = make_response()
            resp.headers["Access-Control-Allow-Origin"] = origin if is_allowed_origin(origin) else "null"
            resp.headers["Vary"] = "Origin"
            resp.headers["Access-Control-Allow-Credentials"] = "true"
            resp.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
            resp.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, OPTIONS"
            return resp, 204

    # --- Blueprint registration ---
    app.register_blueprint(delivery_calculator_bp, url_prefix='/api/delivery')
    app.register_blueprint(delivery_logic_bp, url_prefix='/api/merchant/shops')

    # --- Status routes ---
    @app.route('/health')
    def health_check_simple():
        return jsonify({
            "status": "ok",
            "message": "Server is running",
            "timestamp": datetime.now().isoformat(),
            "service": "Shop Delivery API"
        }), 200

    @app.route('/api/health')
    def health_check():
        return jsonify({
            "status": "healthy",
            "store": type(app.config["DELIVERY_LOGIC_STORE"]).__name__,
            "cors_enabled": True
        })

    # --- Error handlers ---
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"status": "error", "error": "Endpoint not found", "path": request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"status": "error", "error": "Method not allowed", "method": request.method}), 405

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal error: {error}", exc_info=True)
        return jsonify({"status": "error", "error": "Internal server error"}), 500

    return app


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
    logger.info(f"Starting server on port {port} (debug: {debug})")
    create_app().run(host='0.0.0.0', port=port, debug=debug, use_reloader=debug)
