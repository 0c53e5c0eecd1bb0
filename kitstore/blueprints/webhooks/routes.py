from flask import request, jsonify, current_app

from kitstore.errors import InvalidMetadata, InvalidPayload, StorageError, Unauthorized
from kitstore.extensions import csrf, limiter
from kitstore.services.fulfillment import handle_notification
from . import bp


@csrf.exempt
@limiter.exempt
@bp.post("/stripe")
def stripe_webhook():
    """
    Stripe -> /webhooks/stripe
    2xx tells Stripe to stop retrying, so only a storage failure (nothing
    granted yet) answers 5xx. Bad metadata is logged and acknowledged since a
    retry would carry the same metadata.
    """
    raw_bytes = request.get_data(cache=False, as_text=False)
    sig_header = request.headers.get("Stripe-Signature")

    try:
        result = handle_notification(raw_bytes, sig_header)
    except Unauthorized as e:
        current_app.logger.warning("stripe_webhook_invalid_signature: %s", e.detail)
        return jsonify({"error": "invalid_signature"}), 400
    except InvalidMetadata as e:
        current_app.logger.error("stripe_webhook_invalid_metadata: %s", e.detail)
        return jsonify({"received": True, "ignored": "invalid_metadata"}), 200
    except InvalidPayload as e:
        current_app.logger.error("stripe_webhook_malformed_event: %s", e.detail)
        return jsonify({"error": "malformed_event"}), 400
    except StorageError as e:
        current_app.logger.error("stripe_webhook_storage_error: %s", e.detail)
        return jsonify({"error": "storage_error"}), 500

    return jsonify({"received": True, "status": result.status}), 200
