import pytest

from kitstore.models import User
from kitstore.extensions import db


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


def test_unknown_route_is_json_404(client):
    resp = client.get("/definitely/not/here")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "not_found"}


def test_wrong_method_is_json_405(client):
    resp = client.get("/billing/checkout")
    assert resp.status_code == 405
    assert resp.get_json() == {"error": "method_not_allowed"}


def test_allowed_origin_gets_cors_headers(client):
    resp = client.get("/api/kits", headers={"Origin": "http://example.test"})
    assert resp.headers["Access-Control-Allow-Origin"] == "http://example.test"
    assert resp.headers["Access-Control-Allow-Credentials"] == "true"
    assert "Origin" in resp.headers.get("Vary", "")


def test_unknown_origin_gets_no_cors_headers(client):
    resp = client.get("/api/kits", headers={"Origin": "https://evil.example.net"})
    assert resp.status_code == 200
    assert "Access-Control-Allow-Origin" not in resp.headers


def test_preflight_for_checkout(client):
    resp = client.options(
        "/billing/checkout",
        headers={
            "Origin": "http://example.test",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Content-Type",
        },
    )
    assert resp.status_code == 200
    assert resp.headers["Access-Control-Allow-Origin"] == "http://example.test"
    assert "POST" in resp.headers["Access-Control-Allow-Methods"]
    assert "Content-Type" in resp.headers["Access-Control-Allow-Headers"]


def test_wildcard_origin_never_allows_credentials(app, client, monkeypatch):
    monkeypatch.setitem(app.config, "CORS_ALLOWED_ORIGINS", "*")
    resp = client.get("/api/kits", headers={"Origin": "https://anywhere.example"})
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    assert "Access-Control-Allow-Credentials" not in resp.headers


def test_webhook_endpoint_is_not_cors_enabled(client):
    resp = client.post(
        "/webhooks/stripe",
        data="{}",
        headers={"Origin": "http://example.test", "Stripe-Signature": "t=1,v1=bad"},
    )
    assert resp.status_code == 400
    assert "Access-Control-Allow-Origin" not in resp.headers


def test_passwords_are_hashed(app, make_user):
    uid = make_user(password="correct-horse")
    with app.app_context():
        user = db.session.get(User, uid)
        assert user.password_hash != "correct-horse"
        assert user.check_password("correct-horse")
        assert not user.check_password("wrong")


@pytest.mark.parametrize("env", ["staging", "production"])
def test_prod_like_env_requires_secrets(monkeypatch, env):
    from kitstore import create_app

    monkeypatch.setenv("APP_ENV", env)
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")
    for name in ("SECRET_KEY", "DATABASE_URL", "STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET"):
        monkeypatch.delenv(name, raising=False)

    with pytest.raises(RuntimeError, match="Missing required environment variable"):
        create_app()


def test_prod_like_env_requires_rate_limit_storage(monkeypatch):
    from kitstore import create_app

    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.delenv("REDIS_URL", raising=False)

    with pytest.raises(RuntimeError, match="REDIS_URL"):
        create_app()
