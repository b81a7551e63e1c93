"""
Shared fixtures for the storefront API tests.

The app runs against an in-memory mongomock database and a fake payment
gateway, so no MongoDB server or Stripe account is needed.
"""

import json
from dataclasses import replace
from typing import Any, Dict, Optional

import mongomock
import pytest
from fastapi.testclient import TestClient

from auth import create_access_token, register_user
from catalog import create_product
from config import get_settings
from database import ensure_indexes, get_db
from errors import ExternalServiceError, ValidationError
from main import create_app
from payments import IntentStatus, PaymentIntentHandle, get_payment_gateway
from schemas import Role

WEBHOOK_SECRET = "whsec_test"
VALID_SIGNATURE = "t=1,v1=valid"

SHIPPING_ADDRESS = {
    "name": "Asha Rao",
    "phone": "9876543210",
    "address": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "zipCode": "560001",
}


class FakeGateway:
    """Stands in for StripeGateway; records intents and answers verifications."""

    def __init__(self):
        self.fail_create = False
        self.intent_status = "succeeded"
        self.fail_verify = False
        self.created = []
        self.verified = []

    def create_intent(self, amount, currency, metadata):
        if self.fail_create:
            raise ExternalServiceError("Payment processing failed: card network unavailable")
        intent_id = f"pi_test_{len(self.created) + 1}"
        self.created.append({"id": intent_id, "amount": amount, "currency": currency, "metadata": metadata})
        return PaymentIntentHandle(client_secret=f"{intent_id}_secret", intent_id=intent_id)

    def verify_intent(self, intent_id):
        self.verified.append(intent_id)
        if self.fail_verify:
            raise ExternalServiceError(f"Payment verification failed: no such intent {intent_id}")
        return IntentStatus(id=intent_id, status=self.intent_status, receipt_email="buyer@example.com")

    def construct_event(self, payload, signature, secret):
        if signature != VALID_SIGNATURE or secret != WEBHOOK_SECRET:
            raise ValidationError("Webhook Error: No signatures found matching the expected signature for payload")
        return json.loads(payload)


@pytest.fixture
def settings():
    return replace(get_settings(), stripe_secret_key="sk_test", stripe_webhook_secret=WEBHOOK_SECRET)


@pytest.fixture
def db():
    database = mongomock.MongoClient()["storefront_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(db, gateway, settings):
    app = create_app()
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    app.dependency_overrides[get_settings] = lambda: settings
    return app


@pytest.fixture
def client(app):
    # not used as a context manager, so the lifespan never opens a real connection
    return TestClient(app)


def _auth_headers(doc, settings) -> Dict[str, str]:
    token = create_access_token(str(doc["_id"]), doc["role"], settings)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user(db):
    return register_user(db, "Asha Rao", "asha@example.com", "secret123")


@pytest.fixture
def other_user(db):
    return register_user(db, "Ravi Kumar", "ravi@example.com", "secret123")


@pytest.fixture
def admin(db):
    return register_user(db, "Store Admin", "admin@example.com", "admin123", role=Role.ADMIN)


@pytest.fixture
def user_headers(user, settings):
    return _auth_headers(user, settings)


@pytest.fixture
def other_headers(other_user, settings):
    return _auth_headers(other_user, settings)


@pytest.fixture
def admin_headers(admin, settings):
    return _auth_headers(admin, settings)


@pytest.fixture
def make_product(db):
    counter = {"n": 0}

    def factory(price: float = 100, stock: int = 10, **overrides: Any) -> Dict[str, Any]:
        counter["n"] += 1
        data = {
            "name": f"Test Product {counter['n']}",
            "description": "A product used in tests",
            "price": price,
            "category": "Skincare",
            "brand": "Acme",
            "images": [f"https://img.example.com/{counter['n']}.jpg"],
            "stock": stock,
        }
        data.update(overrides)
        return create_product(db, data)

    return factory


@pytest.fixture
def add_to_cart(client, user_headers):
    def add(product: Dict[str, Any], quantity: int = 1, headers: Optional[Dict[str, str]] = None):
        return client.post(
            "/api/cart/items",
            json={"productId": str(product["_id"]), "quantity": quantity},
            headers=headers or user_headers,
        )

    return add


@pytest.fixture
def checkout(client, user_headers):
    def place(payment_method: str = "stripe", headers: Optional[Dict[str, str]] = None, address=SHIPPING_ADDRESS):
        return client.post(
            "/api/orders",
            json={"shippingAddress": address, "paymentMethod": payment_method},
            headers=headers or user_headers,
        )

    return place
