import json
import os
from decimal import Decimal

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["EVENTS_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient

from storefront import auth, config, crud, payments
from storefront.database import SessionLocal, engine
from storefront.main import app
from storefront.models import Base


class FakeStripe:
    """In-memory stand-in for the Stripe calls made through storefront.payments."""

    def __init__(self):
        self.products = {}
        self.prices = {}
        self.deactivated = []
        self.sessions = []
        self.session_updates = []
        self.line_items = {}
        self._counter = 0

    def _next_id(self, prefix):
        self._counter += 1
        return f"{prefix}_{self._counter}"

    def create_product(self, name, images):
        product_id = self._next_id("prod")
        self.products[product_id] = {"name": name, "images": images}
        return product_id

    def update_product(self, product_id, **fields):
        self.products[product_id].update(fields)

    def create_price(self, product_id, amount):
        price_id = self._next_id("price")
        self.prices[price_id] = {"product": product_id, "unit_amount": payments.to_minor_units(amount)}
        return price_id

    def deactivate_price(self, price_id):
        self.deactivated.append(price_id)

    def retrieve_price(self, price_id):
        price = self.prices[price_id]
        return {"id": price_id, "unit_amount": price["unit_amount"], "product": price["product"]}

    def create_checkout_session(self, line_items, return_url):
        self.sessions.append({"line_items": line_items, "return_url": return_url})
        return f"cs_secret_{len(self.sessions)}"

    def retrieve_session(self, session_id):
        return {"id": session_id}

    def list_line_items(self, session_id):
        return self.line_items.get(session_id, [])

    def update_session_shipping(self, session_id, shipping_details, shipping_options):
        self.session_updates.append(
            {"session_id": session_id, "shipping_details": shipping_details, "shipping_options": shipping_options}
        )

    def construct_event(self, payload, sig_header):
        if sig_header != "valid":
            raise ValueError("No signatures found matching the expected signature for payload")
        return json.loads(payload)


@pytest.fixture(autouse=True)
def reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def admin_headers():
    token = auth.create_access_token({"sub": config.ADMIN_USERNAME, "role": "admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def fake_stripe(monkeypatch):
    fake = FakeStripe()
    monkeypatch.setattr(config, "STRIPE_SECRET_KEY", "sk_test_fake")
    monkeypatch.setattr(config, "STRIPE_WEBHOOK_SECRET", "whsec_fake")
    for name in (
        "create_product",
        "update_product",
        "create_price",
        "deactivate_price",
        "retrieve_price",
        "create_checkout_session",
        "retrieve_session",
        "list_line_items",
        "update_session_shipping",
        "construct_event",
    ):
        monkeypatch.setattr(payments, name, getattr(fake, name))
    return fake


@pytest.fixture
def make_listing(db):
    def _make(category="availability", options=(), **fields):
        data = {"name": "Lilly White Crested Gecko", "price": Decimal("250.00"), "stock": 3, "images": ["https://img/a.png"]}
        data.update(fields)
        return crud.create_listing(db, category, data, list(options))

    return _make


@pytest.fixture
def synced_listing(db, make_listing, fake_stripe):
    def _make(category="availability", options=(), **fields):
        listing = make_listing(category, options, **fields)
        payments.sync_listing(listing)
        db.commit()
        db.refresh(listing)
        return listing

    return _make
