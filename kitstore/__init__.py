import os
from flask import Flask, jsonify

# Load .env only for local/dev. In prod, env vars come from the platform.
if os.getenv("APP_ENV", "development") != "production":
    from dotenv import load_dotenv
    load_dotenv(".env", override=False)


from .config import get_config
from .errors import register_error_handlers
from .extensions import db, migrate, csrf, login_manager, limiter
from .observability import init_logging, init_sentry
from .security import init_cors, init_security

_REQUIRED_IN_PROD = ("SECRET_KEY", "DATABASE_URL", "STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET")


def create_app(test_config=None):
    app = Flask(__name__)

    # Rate limiting storage: Redis in staging/production, memory elsewhere
    app_env = (os.getenv("APP_ENV", "development") or "development").lower()
    use_redis = app_env in ("staging", "production")
    storage_uri = os.environ.get("REDIS_URL") if use_redis else "memory://"
    if use_redis and not storage_uri:
        # Hard fail in stage/prod so we never silently run without RL storage
        raise RuntimeError("REDIS_URL is required in staging/production for rate limiting")
    app.config["RATELIMIT_STORAGE_URI"] = storage_uri
    app.config.setdefault("RATELIMIT_HEADERS_ENABLED", True)

    # Config: clean, explicit, class-based
    app.config.from_object(get_config())
    app.config["APP_ENV"] = app_env
    if test_config:
        app.config.update(test_config)

    # --- Required env validation for prod-like envs (staging/production) ---
    if app_env in ("staging", "production"):
        for name in _REQUIRED_IN_PROD:
            if not os.getenv(name):
                raise RuntimeError(f"Missing required environment variable: {name}")

    init_logging(app)
    init_sentry(app)

    # Apply HTTPS, HSTS & CSP only in staging/production
    if app_env in ("staging", "production"):
        init_security(app)
    init_cors(app)

    # Init extensions
    db.init_app(app)
    migrate.init_app(app, db, directory="migrations")
    csrf.init_app(app)
    login_manager.init_app(app)
    limiter.init_app(app)

    @login_manager.unauthorized_handler
    def _unauthorized():
        return jsonify({"error": "unauthorized"}), 401

    # Blueprints (explicit, consistent prefixes)
    from .blueprints.api import bp as api_bp
    from .blueprints.auth import bp as auth_bp
    from .blueprints.billing import bp as billing_bp
    from .blueprints.webhooks import bp as webhooks_bp

    app.register_blueprint(api_bp, url_prefix="/api")
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(billing_bp, url_prefix="/billing")
    app.register_blueprint(webhooks_bp, url_prefix="/webhooks")

    # The storefront client talks JSON; session cookie + CORS allowlist guard these
    csrf.exempt(api_bp)
    csrf.exempt(auth_bp)
    csrf.exempt(billing_bp)

    register_error_handlers(app)

    @limiter.exempt
    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}, 200

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "not_found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "method_not_allowed"}), 405

    @app.errorhandler(500)
    def server_error(e):
        return jsonify({"error": "internal_error"}), 500

    # 429 Too Many Requests with Retry-After
    @app.errorhandler(429)
    def too_many_requests(e):
        retry_after = getattr(e, "retry_after", None)
        headers = {}
        payload = {"error": "rate_limited", "code": 429}
        if retry_after is not None:
            headers["Retry-After"] = str(int(retry_after))
            payload["retry_after"] = int(retry_after)
        return (payload, 429, headers)

    # CLI commands (ops-grade utilities)
    from .cli import register_cli
    register_cli(app)

    if not app.config.get("STRIPE_SECRET_KEY"):
        app.logger.warning("Stripe secret key missing; checkout will not work")

    return app
