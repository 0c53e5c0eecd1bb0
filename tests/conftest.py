import hashlib
import hmac
import json
import os
import time

# Ensure the app factory picks the Testing config & SQLite memory DB
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("TEST_DATABASE_URL", "sqlite:///:memory:")

import pytest
from kitstore import create_app
from kitstore.extensions import db
from kitstore.models import User
from kitstore.services.catalog import create_kit

WEBHOOK_SECRET = "whsec_test_kitstore"

SAMPLE_ASSETS = [
    {"id": "landing_page", "name": "Landing Page Template", "type": "template",
     "description": "Conversion-optimized landing page"},
    {"id": "product_hunt_copy", "name": "Product Hunt Launch Copy", "type": "text",
     "description": "Tagline, description and first comment"},
    {"id": "social_graphics", "name": "Social Media Graphics", "type": "graphic",
     "description": "Launch announcement graphics"},
]


@pytest.fixture(scope="session")
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": os.environ["TEST_DATABASE_URL"],
        "APP_BASE_URL": "http://example.test",
        "CORS_ALLOWED_ORIGINS": "http://example.test",
        "WTF_CSRF_ENABLED": False,
        "RATELIMIT_ENABLED": False,
        "STRIPE_SECRET_KEY": "sk_test_kitstore",
        "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def _db_clean(app):
    # Clean BEFORE each test
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()
    yield
    # And AFTER each test (keeps state hermetic even if a test fails mid-transaction)
    with app.app_context():
        db.session.rollback()
        for tbl in reversed(db.metadata.sorted_tables):
            db.session.execute(tbl.delete())
        db.session.commit()


@pytest.fixture()
def make_kit(app):
    """Create a kit through the catalog service; returns its id."""
    def _make(kit_id="saas-launch-kit", name="SaaS Launch Kit", price="29.99",
              stripe_price_id="price_saas_launch_kit", assets=None, created_at=None, **extra):
        with app.app_context():
            kit = create_kit(
                kit_id=kit_id,
                name=name,
                price=price,
                stripe_price_id=stripe_price_id,
                assets=SAMPLE_ASSETS if assets is None else assets,
                **extra,
            )
            if created_at is not None:
                kit.created_at = created_at
                db.session.commit()
            return kit.id
    return _make


@pytest.fixture()
def make_user(app):
    def _make(email="buyer@example.com", password="correct-horse"):
        with app.app_context():
            user = User(email=email)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            return user.id
    return _make


def login(client, user_id):
    # Simulate Flask-Login session
    with client.session_transaction() as sess:
        sess["_user_id"] = str(user_id)
        sess["_fresh"] = True


def sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp=None) -> str:
    """Build a Stripe-Signature header the way Stripe does: HMAC-SHA256 over "<t>.<payload>"."""
    ts = int(time.time()) if timestamp is None else int(timestamp)
    digest = hmac.new(secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def checkout_completed_event(event_id="evt_test_1", kit_id="saas-launch-kit", user_id="user-123",
                             session_id="cs_test_1", payment_status="paid", metadata=None,
                             event_type="checkout.session.completed"):
    if metadata is None:
        metadata = {"kit_id": kit_id, "user_id": user_id}
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {
            "object": {
                "id": session_id,
                "object": "checkout.session",
                "mode": "payment",
                "payment_status": payment_status,
                "client_reference_id": user_id,
                "metadata": metadata,
            }
        },
    }


@pytest.fixture()
def post_webhook(client):
    """POST a JSON event with a valid signature unless a header is given."""
    def _post(event, signature=None, raw=None):
        body = raw if raw is not None else json.dumps(event)
        headers = {"Content-Type": "application/json"}
        sig = sign(body) if signature is None else signature
        if sig:
            headers["Stripe-Signature"] = sig
        return client.post("/webhooks/stripe", data=body, headers=headers)
    return _post
