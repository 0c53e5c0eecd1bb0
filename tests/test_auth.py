from kitstore.extensions import db
from kitstore.services.entitlements import grant_entitlement

from conftest import login


def test_signup_signs_in(client):
    resp = client.post("/auth/signup", json={"email": "New@Example.com", "password": "long-enough"})
    assert resp.status_code == 201
    user = resp.get_json()["user"]
    assert user["email"] == "new@example.com"

    me = client.get("/auth/me").get_json()
    assert me == {"authenticated": True, "user": user}


def test_signup_rejects_duplicate_email_case_insensitively(client, make_user):
    make_user(email="taken@example.com")
    resp = client.post("/auth/signup", json={"email": "TAKEN@example.com", "password": "long-enough"})
    assert resp.status_code == 409
    assert resp.get_json()["error"] == "conflict"


def test_signup_validates_input(client):
    resp = client.post("/auth/signup", json={"email": "not-an-email", "password": "short"})
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["error"] == "invalid_request"
    assert "email" in body["message"]
    assert "Password" in body["message"]


def test_login_and_logout(client, make_user):
    uid = make_user(email="buyer@example.com", password="correct-horse")

    resp = client.post("/auth/login", json={"email": "Buyer@Example.com", "password": "correct-horse"})
    assert resp.status_code == 200
    assert resp.get_json()["user"]["id"] == uid

    assert client.post("/auth/logout").get_json() == {"ok": True}
    assert client.get("/auth/me").get_json() == {"authenticated": False, "user": None}


def test_login_wrong_password(client, make_user):
    make_user(email="buyer@example.com", password="correct-horse")
    resp = client.post("/auth/login", json={"email": "buyer@example.com", "password": "battery-staple"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "invalid_credentials"


def test_login_unknown_email_looks_like_wrong_password(client):
    resp = client.post("/auth/login", json={"email": "ghost@example.com", "password": "whatever1"})
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "invalid_credentials"


def test_login_requires_fields(client):
    resp = client.post("/auth/login", json={"email": "buyer@example.com"})
    assert resp.status_code == 400


def test_my_kits_requires_login(client):
    resp = client.get("/api/me/kits")
    assert resp.status_code == 401
    assert resp.get_json() == {"error": "unauthorized"}


def test_my_kits_lists_owned_kits(app, client, make_kit, make_user):
    kit_id = make_kit()
    make_kit(kit_id="unowned", stripe_price_id="price_unowned")
    uid = make_user()
    with app.app_context():
        grant_entitlement(uid, kit_id, stripe_session_id="cs_1")

    login(client, uid)
    resp = client.get("/api/me/kits")
    assert resp.status_code == 200
    rows = resp.get_json()["entitlements"]
    assert [r["kit_id"] for r in rows] == [kit_id]
    assert rows[0]["kit"]["name"] == "SaaS Launch Kit"


def test_kit_access_gate(app, client, make_kit, make_user):
    kit_id = make_kit()
    uid = make_user()

    # anonymous
    resp = client.get(f"/api/kits/{kit_id}/access")
    assert resp.status_code == 401

    # signed in, not purchased
    login(client, uid)
    resp = client.get(f"/api/kits/{kit_id}/access")
    assert resp.status_code == 403
    assert resp.get_json() == {"error": "entitlement_required", "kit_id": kit_id}

    # after fulfillment
    with app.app_context():
        grant_entitlement(uid, kit_id)
    resp = client.get(f"/api/kits/{kit_id}/access")
    assert resp.status_code == 200
    assert resp.get_json() == {"kit_id": kit_id, "owned": True}


def test_inactive_user_cannot_log_in(app, client, make_user):
    uid = make_user(email="gone@example.com", password="correct-horse")
    with app.app_context():
        from kitstore.models import User
        db.session.get(User, uid).is_active = False
        db.session.commit()

    resp = client.post("/auth/login", json={"email": "gone@example.com", "password": "correct-horse"})
    assert resp.status_code == 401
