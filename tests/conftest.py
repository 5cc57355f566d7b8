"""
Shared fixtures: default pricing config, an in-memory store with two shops
and a Flask test client whose token lookup is patched.
"""

from unittest.mock import patch

import pytest

from shopdelivery.logic.delivery_pricing import DeliveryPricingConfig
from shopdelivery.main import create_app
from shopdelivery.providers.delivery_logic_store import InMemoryDeliveryLogicStore


@pytest.fixture
def default_config():
    """The documented defaults: 5 tiers up to 1000 m, max fee 130."""
    return DeliveryPricingConfig()


@pytest.fixture
def store():
    """In-memory store; shop-1 has coordinates, shop-2 does not. user-1 owns both."""
    return InMemoryDeliveryLogicStore(
        shops=[
            {"id": "shop-1", "name": "Corner Store", "latitude": 24.8607, "longitude": 67.0011},
            {"id": "shop-2", "name": "Pharmacy", "latitude": None, "longitude": None},
        ],
        owners={"shop-1": "user-1", "shop-2": "user-1"},
    )


@pytest.fixture
def client(store):
    app = create_app(store=store)
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def logged_in_as():
    """Patches the Supabase token lookup; call with the user id to log in as."""
    patcher = None

    def _login(user_id):
        nonlocal patcher
        patcher = patch(
            "shopdelivery.utils.decorators.get_user_id_from_token",
            return_value=(user_id, None),
        )
        patcher.start()
        return {"Authorization": "Bearer test-token"}

    yield _login

    if patcher is not None:
        patcher.stop()
