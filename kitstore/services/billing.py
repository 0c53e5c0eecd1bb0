from typing import Dict, Any, Optional
import hashlib
import json

import stripe
from flask import current_app
from stripe import StripeClient

from kitstore.errors import ConfigurationError, InvalidRequest, UpstreamError
from kitstore.observability import log_event
from kitstore.security.cors import is_allowed_origin
from kitstore.services.catalog import get_kit


def _client() -> StripeClient:
    key = current_app.config.get("STRIPE_SECRET_KEY")
    if not key:
        raise ConfigurationError(detail="STRIPE_SECRET_KEY is not configured")
    timeout = current_app.config.get("STRIPE_TIMEOUT_SECONDS", 10)
    return StripeClient(
        key,
        http_client=stripe.RequestsClient(timeout=timeout),
        max_network_retries=current_app.config.get("STRIPE_MAX_NETWORK_RETRIES", 2),
    )


def make_idempotency_key(*parts: Any) -> str:
    raw = "|".join(str(p) for p in parts)
    return "checkout:" + hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]


def _params_hash(d: Dict[str, Any]) -> str:
    # Stable across runs if params identical; changes when any field changes
    return hashlib.sha256(json.dumps(d, sort_keys=True, separators=(",", ":")).encode("utf-8")).hexdigest()[:16]


def resolve_origin(origin: Optional[str]) -> str:
    """The caller's origin when we trust it, else the configured base URL."""
    if origin and is_allowed_origin(origin):
        return origin.rstrip("/")
    return (current_app.config.get("APP_BASE_URL") or "").rstrip("/")


def build_checkout_params(*, kit, user_id: str, origin: str) -> Dict[str, Any]:
    # kit_id/user_id ride along as metadata; the completion webhook echoes them back
    metadata = {"kit_id": str(kit.id), "user_id": str(user_id)}
    return {
        "mode": "payment",
        "line_items": [{"price": kit.stripe_price_id, "quantity": 1}],
        "success_url": f"{origin}/dashboard?session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{origin}/",
        "client_reference_id": str(user_id),
        "metadata": metadata,
        "payment_intent_data": {"metadata": dict(metadata)},
    }


def initiate_checkout(kit_id, user_id, *, origin: Optional[str] = None) -> Dict[str, Any]:
    """
    Create a Stripe-hosted Checkout Session for one kit.
    Returns: {"sessionId": <session_id>, "redirectUrl": <hosted checkout url>}
    No local state is written; fulfillment happens in the webhook.
    """
    kit_id = str(kit_id).strip() if kit_id is not None else ""
    # user_id goes to Stripe exactly as given
    user_id = str(user_id) if user_id is not None else ""
    if not kit_id or not user_id.strip():
        raise InvalidRequest()

    kit = get_kit(kit_id)
    params = build_checkout_params(kit=kit, user_id=user_id, origin=resolve_origin(origin))

    # Param-aware idempotency: a double submit returns the same session
    idem = make_idempotency_key("checkout", "v1", kit.id, user_id, _params_hash(params))
    try:
        session = _client().checkout.sessions.create(params=params, options={"idempotency_key": idem})
    except stripe.StripeError as exc:
        current_app.logger.exception(
            "billing.checkout.session_create_failed",
            extra={"kit_id": kit.id, "user_id": user_id},
        )
        raise UpstreamError(detail=f"{exc.__class__.__name__}: {exc}") from exc

    url = getattr(session, "url", None)
    if not url:
        raise UpstreamError(detail=f"checkout session {session.id} has no url")

    log_event("checkout_session_created", session_id=session.id, kit_id=kit.id, user_id=user_id)
    return {"sessionId": session.id, "redirectUrl": url}


def create_kit_price(*, name: str, description: Optional[str], unit_amount_cents: int) -> str:
    """Create a Stripe Product plus a one-time Price for catalog tooling. Returns the price id."""
    client = _client()
    currency = current_app.config.get("STRIPE_CURRENCY", "usd")
    try:
        product_params: Dict[str, Any] = {"name": name}
        if description:
            product_params["description"] = description
        product = client.products.create(params=product_params)
        price = client.prices.create(params={
            "unit_amount": int(unit_amount_cents),
            "currency": currency,
            "product": product.id,
        })
    except stripe.StripeError as exc:
        raise UpstreamError(detail=f"{exc.__class__.__name__}: {exc}") from exc
    return price.id
