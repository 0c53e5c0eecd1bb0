"""Payment notification handling: Stripe webhook → entitlement.

Flow per delivery:

1. verify the ``Stripe-Signature`` header against the raw body (nothing else
   is trusted until this passes);
2. record the delivery in ``BillingEventLog`` (audit only);
3. fulfil ``checkout.session.completed`` / ``async_payment_succeeded`` by
   granting an entitlement for the ``kit_id``/``user_id`` carried in session
   metadata; everything else is acknowledged and ignored.

Redeliveries are expected. Duplicate grants collapse onto the unique
(user_id, kit_id) row, so a retried or concurrent delivery reports
``already_fulfilled`` instead of failing.
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import stripe
from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from kitstore.errors import ConfigurationError, InvalidMetadata, InvalidPayload, StorageError, Unauthorized
from kitstore.extensions import db
from kitstore.models import BillingEventLog
from kitstore.observability import log_event
from kitstore.services.catalog import find_kit
from kitstore.services.entitlements import grant_entitlement

EVENT_CHECKOUT_COMPLETED = "checkout.session.completed"
EVENT_ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
FULFILLMENT_EVENTS = (EVENT_CHECKOUT_COMPLETED, EVENT_ASYNC_PAYMENT_SUCCEEDED)

STATUS_FULFILLED = "fulfilled"
STATUS_ALREADY_FULFILLED = "already_fulfilled"
STATUS_IGNORED = "ignored"


@dataclass(frozen=True)
class FulfillmentResult:
    status: str
    event_id: str
    event_type: str
    user_id: Optional[str] = None
    kit_id: Optional[str] = None
    reason: Optional[str] = None


def _utcnow():
    return datetime.now(timezone.utc)


def verify_signature(raw_body: bytes, signature_header: Optional[str]) -> dict:
    """Return the decoded event, or raise Unauthorized. Never parses an unverified body."""
    secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not secret:
        raise ConfigurationError(detail="STRIPE_WEBHOOK_SECRET is not configured")
    if not signature_header:
        raise Unauthorized(detail="missing Stripe-Signature header")

    try:
        payload = raw_body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise Unauthorized(detail="body is not utf-8") from exc

    try:
        stripe.WebhookSignature.verify_header(
            payload,
            signature_header,
            secret,
            tolerance=current_app.config.get("STRIPE_WEBHOOK_TOLERANCE", 300),
        )
    except stripe.SignatureVerificationError as exc:
        raise Unauthorized(detail=str(exc)) from exc

    try:
        event = json.loads(payload)
    except ValueError as exc:
        raise Unauthorized(detail="signed body is not JSON") from exc
    if not isinstance(event, dict):
        raise Unauthorized(detail="signed body is not a JSON object")
    return event


def _log_invalid_signature(raw_body: bytes, reason: str) -> None:
    # Deterministic synthetic id; nothing from the untrusted payload is stored
    digest = hashlib.sha256(raw_body).hexdigest()[:32]
    synthetic_id = f"invalid:{digest}"
    try:
        log = db.session.execute(
            db.select(BillingEventLog).filter_by(stripe_event_id=synthetic_id)
        ).scalar_one_or_none()
        if log is None:
            db.session.add(BillingEventLog(
                stripe_event_id=synthetic_id,
                type="signature_invalid",
                signature_valid=False,
                payload={},
                notes=reason[:255],
            ))
        else:
            log.retries = (log.retries or 0) + 1
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("billing.webhook.audit_write_failed")


def _record_delivery(event: dict) -> BillingEventLog:
    """Insert the audit row for this event, or bump its retry count on redelivery."""
    ev_id, ev_type = event["id"], event["type"]
    try:
        log = db.session.execute(
            db.select(BillingEventLog).filter_by(stripe_event_id=ev_id)
        ).scalar_one_or_none()
        if log is None:
            log = BillingEventLog(
                stripe_event_id=ev_id,
                type=ev_type,
                signature_valid=True,
                payload=event,
                retries=0,
            )
            db.session.add(log)
        else:
            log.retries = (log.retries or 0) + 1
        db.session.commit()
        return log
    except IntegrityError:
        # A concurrent delivery of the same event inserted first
        db.session.rollback()
        try:
            return db.session.execute(
                db.select(BillingEventLog).filter_by(stripe_event_id=ev_id)
            ).scalar_one()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError(detail=str(exc)) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(detail=str(exc)) from exc


def _finish(log: BillingEventLog, notes: str) -> None:
    try:
        log.notes = notes[:255]
        log.processed_at = _utcnow()
        db.session.commit()
    except SQLAlchemyError:
        # The grant is already durable; a stale audit row is not worth a provider retry
        db.session.rollback()
        current_app.logger.exception("billing.webhook.audit_write_failed")


def handle_notification(raw_body: bytes, signature_header: Optional[str]) -> FulfillmentResult:
    """
    Verify and process one provider notification.

    Raises Unauthorized (bad signature), InvalidPayload (verified but unusable),
    StorageError (nothing durably granted; the provider should retry) or
    ConfigurationError.
    """
    raw_body = raw_body or b""
    try:
        event = verify_signature(raw_body, signature_header)
    except Unauthorized as exc:
        _log_invalid_signature(raw_body, exc.detail or "signature_invalid")
        log_event("webhook_invalid_signature", level="warning", reason=exc.detail)
        raise

    ev_id = event.get("id")
    ev_type = event.get("type")
    if not ev_id or not ev_type:
        raise InvalidPayload(detail="event without id or type")

    log = _record_delivery(event)

    if ev_type not in FULFILLMENT_EVENTS:
        _finish(log, "ignored")
        log_event("webhook_ignored", event_id=ev_id, event_type=ev_type)
        return FulfillmentResult(status=STATUS_IGNORED, event_id=ev_id, event_type=ev_type, reason="event_type")

    data = event.get("data")
    session = data.get("object") if isinstance(data, dict) else None
    if not isinstance(session, dict):
        _finish(log, "malformed_event")
        log_event("webhook_malformed_event", level="error", event_id=ev_id, event_type=ev_type)
        raise InvalidPayload(detail=f"event {ev_id} has no data.object")

    # Delayed payment methods complete the session before the money arrives;
    # the async_payment_succeeded event carries the fulfilment for those.
    if ev_type == EVENT_CHECKOUT_COMPLETED and session.get("payment_status") == "unpaid":
        _finish(log, "awaiting_async_payment")
        log_event("webhook_awaiting_payment", event_id=ev_id, session_id=session.get("id"))
        return FulfillmentResult(status=STATUS_IGNORED, event_id=ev_id, event_type=ev_type, reason="unpaid")

    metadata = session.get("metadata") or {}
    if not isinstance(metadata, dict):
        _finish(log, "invalid_metadata")
        log_event("webhook_invalid_metadata", level="error", event_id=ev_id, metadata=repr(metadata)[:200])
        raise InvalidMetadata(detail=f"event {ev_id} metadata is not an object")
    kit_id = str(metadata.get("kit_id") or "").strip()
    user_id = str(metadata.get("user_id") or "").strip()
    if not kit_id or not user_id:
        _finish(log, "invalid_metadata")
        log_event("webhook_invalid_metadata", level="error", event_id=ev_id, metadata=metadata)
        raise InvalidMetadata(detail=f"event {ev_id} is missing kit_id/user_id metadata")

    if find_kit(kit_id) is None:
        _finish(log, "unknown_kit")
        log_event("webhook_unknown_kit", level="error", event_id=ev_id, kit_id=kit_id, user_id=user_id)
        raise InvalidMetadata(detail=f"event {ev_id} references unknown kit {kit_id!r}")

    record, created = grant_entitlement(user_id, kit_id, stripe_session_id=session.get("id"))
    status = STATUS_FULFILLED if created else STATUS_ALREADY_FULFILLED
    _finish(log, status)
    log_event(
        "entitlement_granted" if created else "entitlement_already_granted",
        event_id=ev_id,
        entitlement_id=record.id,
        user_id=user_id,
        kit_id=kit_id,
    )
    return FulfillmentResult(status=status, event_id=ev_id, event_type=ev_type, user_id=user_id, kit_id=kit_id)
