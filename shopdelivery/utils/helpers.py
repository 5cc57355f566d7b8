# shopdelivery/utils/helpers.py

import os
import json
import uuid
import logging
import math
from flask import jsonify
from supabase import create_client, Client
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

logger = logging.getLogger(__name__)

# --- Supabase ---
supabase: Optional[Client] = None
try:
    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY")
    if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required.")
    supabase = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    logger.info("✅ Supabase client initialized.")
except Exception as e:
    logger.error(f"❌ Failed to initialize Supabase: {e}")
    supabase = None


# --- Auth helper ---
def _extract_bearer_token(auth_header: str):
    """Extract the token from an Authorization header.
    Accepts:
      - 'Bearer <jwt>'
      - '<jwt>' (without 'Bearer', some clients send it like that)
    """
    if not auth_header:
        return None
    parts = auth_header.strip().split()
    if len(parts) == 0:
        return None
    if parts[0].lower() == "bearer" and len(parts) >= 2:
        return parts[1]
    return parts[0]


def get_user_id_from_token(auth_header):
    """
    Returns (user_id:str|None, error_response|None)
    - On failure the second item is a tuple (json_response, status_code)
    """
    token = _extract_bearer_token(auth_header)
    if not token:
        return None, (jsonify({"status": "error", "error": "Missing or invalid Authorization header"}), 401)

    try:
        if not supabase:
            raise RuntimeError("Supabase client not initialized.")

        user_resp = supabase.auth.get_user(token)
        user = getattr(user_resp, "user", None)
        if not user:
            return None, (jsonify({"status": "error", "error": "Invalid or expired token"}), 401)

        return str(user.id), None

    except Exception as e:
        msg = str(e)
        logger.error(f"Error while processing token: {msg}", exc_info=True)
        if "invalid" in msg.lower() or "jwt" in msg.lower() or "token" in msg.lower():
            return None, (jsonify({"status": "error", "error": f"Authentication error: {msg}"}), 401)
        return None, (jsonify({"status": "error", "error": "Internal error while validating token"}), 500)


# --- JSON utils ---
class CustomJSONEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime, date, time)):
            return obj.isoformat()
        if isinstance(obj, uuid.UUID):
            return str(obj)
        return super().default(obj)


def serialize_data(data):
    return json.loads(json.dumps(data, cls=CustomJSONEncoder))


def round_money(value):
    return round(float(value), 2)


def parse_number(value) -> float:
    """float(value) for request input; NaN and infinity raise ValueError."""
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"{value!r} is not a finite number")
    return number
