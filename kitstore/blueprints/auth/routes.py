from flask import request, jsonify
from flask_login import login_user, logout_user, current_user
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from kitstore.errors import Conflict, InvalidRequest
from kitstore.extensions import db, limiter
from kitstore.models import User
from . import bp

MIN_PASSWORD_LENGTH = 8


def _login_email_scope():
    data_json = request.get_json(silent=True) or {}
    email = (data_json.get("email") or "").strip().lower()
    # Keep a stable scope even if email is blank
    return f"login-email:{email or 'missing'}"


def _credentials():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    return email, password


def _find_user(email: str):
    return db.session.execute(
        db.select(User).where(func.lower(User.email) == func.lower(email))
    ).scalar_one_or_none()


@bp.post("/signup")
@limiter.limit("5 per minute; 20 per hour")
def signup():
    email, password = _credentials()

    errors = []
    if not email or "@" not in email:
        errors.append("A valid email is required.")
    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if errors:
        raise InvalidRequest(" ".join(errors))

    # case-insensitive uniqueness check
    if _find_user(email) is not None:
        raise Conflict("An account with that email already exists. Try signing in.")

    user = User(email=email)
    user.set_password(password)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError as exc:
        # Lost a race against a concurrent signup for the same address
        db.session.rollback()
        raise Conflict("An account with that email already exists. Try signing in.") from exc

    login_user(user)
    return jsonify({"user": user.to_dict()}), 201


@bp.post("/login")
@limiter.limit("10 per minute; 100 per hour")              # per-IP (anon -> IP via _rate_limit_key)
@limiter.limit("5 per minute; 20 per hour", key_func=_login_email_scope)  # per-account
def login():
    email, password = _credentials()
    if not email or not password:
        raise InvalidRequest("Email and password are required")

    user = _find_user(email)
    if not user or not user.check_password(password) or not user.is_active:
        return jsonify({"error": "invalid_credentials", "message": "Invalid credentials"}), 401

    login_user(user)
    return jsonify({"user": user.to_dict()})


@bp.post("/logout")
def logout():
    if current_user.is_authenticated:
        logout_user()
    return jsonify({"ok": True})


@bp.get("/me")
def me():
    """checkAuth for the client: who is signed in, if anyone."""
    if not current_user.is_authenticated:
        return jsonify({"authenticated": False, "user": None})
    return jsonify({"authenticated": True, "user": current_user.to_dict()})
