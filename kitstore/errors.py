"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; blueprints never build error payloads by hand. Each
error carries the HTTP status it maps to and a public message that is safe to
return to a caller. Anything sensitive (provider responses, SQL errors) stays
in the logs.
"""
from typing import Optional


class KitStoreError(Exception):
    code = "internal_error"
    status_code = 500
    public_message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None):
        self.message = message or self.public_message
        self.detail = detail
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidRequest(KitStoreError):
    """Bad or missing input; not retryable as-is."""
    code = "invalid_request"
    status_code = 400
    public_message = "Missing required fields"


class NotFound(KitStoreError):
    code = "not_found"
    status_code = 404
    public_message = "Kit not found"


class Forbidden(KitStoreError):
    code = "forbidden"
    status_code = 403
    public_message = "Forbidden"


class Conflict(KitStoreError):
    code = "conflict"
    status_code = 409
    public_message = "Already exists"


class Unauthorized(KitStoreError):
    """Provider signature check failed. The event is never processed."""
    code = "invalid_signature"
    status_code = 400
    public_message = "Webhook signature verification failed"


class InvalidPayload(KitStoreError):
    """Verified event with unusable content. Logged, acknowledged, not retried."""
    code = "invalid_payload"
    status_code = 400
    public_message = "Malformed event"


class InvalidMetadata(InvalidPayload):
    """Completion event whose kit_id/user_id metadata is missing or points nowhere."""
    code = "invalid_metadata"
    public_message = "Event metadata is missing kit_id or user_id"


class UpstreamError(KitStoreError):
    """Payment provider unreachable or rejected the request. Caller may retry the purchase."""
    code = "upstream_error"
    status_code = 500
    public_message = "Could not start checkout. Please try again."


class StorageError(KitStoreError):
    """Persistence failed; nothing was durably written."""
    code = "storage_error"
    status_code = 500
    public_message = "Failed to process request"


class ConfigurationError(KitStoreError):
    code = "configuration_error"
    status_code = 500
    public_message = "Service is not configured"


def register_error_handlers(app):
    from flask import jsonify

    @app.errorhandler(KitStoreError)
    def _handle_kitstore_error(e: KitStoreError):
        if e.status_code >= 500:
            app.logger.error("%s: %s", e.code, e.detail or e.message)
        return jsonify(e.to_dict()), e.status_code
