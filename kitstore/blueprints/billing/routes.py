from flask import request, jsonify, current_app
from flask_login import current_user

from kitstore.errors import Forbidden
from kitstore.extensions import limiter
from kitstore.services import billing as billing_service
from . import bp


@bp.get("/stripe-pk")
def stripe_publishable_key():
    """Publishable key for Stripe.js initialization (safe to expose)."""
    return jsonify({"publishable_key": current_app.config.get("STRIPE_PUBLISHABLE_KEY")})


@bp.post("/checkout")
@limiter.limit("10/minute")
def checkout():
    """
    JSON {kit_id, user_id} -> {sessionId, redirectUrl}.
    The client navigates to redirectUrl; entitlement arrives later via webhook.
    """
    data = request.get_json(silent=True) or {}
    kit_id = data.get("kit_id")
    user_id = data.get("user_id")

    # A signed-in caller may only buy for themselves
    if getattr(current_user, "is_authenticated", False) and user_id and str(user_id) != str(current_user.id):
        raise Forbidden("Cannot start checkout for another user")

    payload = billing_service.initiate_checkout(
        kit_id, user_id, origin=request.headers.get("Origin")
    )
    return jsonify(payload), 200
