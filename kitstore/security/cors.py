from flask import current_app, request

_CORS_PREFIXES = ("/api/", "/billing/", "/auth/")
_ALLOW_HEADERS = "Content-Type, Accept, X-Requested-With, X-CSRF-Token"
_ALLOW_METHODS = "GET, POST, OPTIONS"


def allowed_origins() -> list[str]:
    raw = current_app.config.get("CORS_ALLOWED_ORIGINS") or ""
    return [o.strip().rstrip("/") for o in raw.split(",") if o.strip()]


def is_allowed_origin(origin: str | None) -> bool:
    if not origin:
        return False
    allowed = allowed_origins()
    return "*" in allowed or origin.rstrip("/") in allowed


def _cors_applies() -> bool:
    return request.path.startswith(_CORS_PREFIXES)


def init_cors(app):
    """
    Origin allowlist for the JSON API. "*" in CORS_ALLOWED_ORIGINS opens it
    to any origin, but credentials are then never allowed.
    """

    @app.before_request
    def _cors_preflight():
        if request.method != "OPTIONS" or not _cors_applies():
            return None
        resp = app.make_default_options_response()
        return _apply_cors_headers(resp)

    @app.after_request
    def _cors_headers(resp):
        if _cors_applies():
            _apply_cors_headers(resp)
        return resp


def _apply_cors_headers(resp):
    origin = request.headers.get("Origin")
    if not is_allowed_origin(origin):
        return resp
    allowed = allowed_origins()
    if "*" in allowed:
        resp.headers["Access-Control-Allow-Origin"] = "*"
    else:
        resp.headers["Access-Control-Allow-Origin"] = origin
        resp.headers["Access-Control-Allow-Credentials"] = "true"
        resp.headers.add("Vary", "Origin")
    resp.headers["Access-Control-Allow-Methods"] = _ALLOW_METHODS
    resp.headers["Access-Control-Allow-Headers"] = _ALLOW_HEADERS
    return resp
