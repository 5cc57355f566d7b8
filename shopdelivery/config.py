# shopdelivery/config.py

"""
Central settings file for the shop delivery service.
Every business rule that may change over time lives here.
"""

import os

# =================================================
# Order value layer (defaults for new shops)
# =================================================
# Below this subtotal the small order surcharge is added.
DEFAULT_MINIMUM_ORDER_VALUE = 200.0

# Flat fee added to orders below the minimum order value.
DEFAULT_SMALL_ORDER_SURCHARGE = 40.0

# Hard floor: orders below this value cannot be checked out.
DEFAULT_LEAST_ORDER_VALUE = 100.0


# =================================================
# Distance layer
# =================================================
# (max distance in meters, fee) pairs of the built-in ladder.
DEFAULT_DISTANCE_TIER_VALUES = (
    (200, 20.0),
    (400, 30.0),
    (600, 40.0),
    (800, 50.0),
    (1000, 60.0),
)

# Ceiling for any computed delivery fee, overflow included.
DEFAULT_MAX_DELIVERY_FEE = 130.0

# Past the last tier: this fee for every started distance unit (meters).
DEFAULT_BEYOND_TIER_FEE_PER_UNIT = 10.0
DEFAULT_BEYOND_TIER_DISTANCE_UNIT = 250.0

# Merchants cannot set a max delivery fee above this value.
MAX_DELIVERY_FEE_LIMIT = 300.0


# =================================================
# Free delivery layer
# =================================================
# Free delivery needs subtotal >= threshold AND distance <= radius (meters).
DEFAULT_FREE_DELIVERY_THRESHOLD = 800.0
DEFAULT_FREE_DELIVERY_RADIUS = 1000.0


# =================================================
# Infrastructure (environment)
# =================================================
# supabase | memory
DELIVERY_LOGIC_STORE = os.environ.get("DELIVERY_LOGIC_STORE", "supabase").lower()

# Extra attempts for a Supabase query after a timeout/connection error.
SUPABASE_MAX_RETRIES = int(os.environ.get("SUPABASE_MAX_RETRIES", "1"))

# Per-shop timeout when pricing a list of shops.
SHOP_FEE_FETCH_TIMEOUT_SECONDS = float(os.environ.get("SHOP_FEE_FETCH_TIMEOUT_SECONDS", "10"))
SHOP_FEE_MAX_WORKERS = int(os.environ.get("SHOP_FEE_MAX_WORKERS", "8"))
