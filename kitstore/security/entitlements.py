from functools import wraps
from typing import Callable
from flask import jsonify
from flask_login import current_user
from kitstore.services.entitlements import has_entitlement


def require_kit_entitlement(kit_id_arg: str = "kit_id") -> Callable:
    """
    Server-side guard for purchased content (the editor and asset routes).
    - Requires a signed-in user
    - Requires an Entitlement for (current_user.id, view_kwargs[kit_id_arg])
    Always answers JSON; this service has no HTML pages.
    """
    def decorator(fn: Callable) -> Callable:
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not getattr(current_user, "is_authenticated", False):
                return jsonify({"error": "unauthorized"}), 401
            kit_id = kwargs.get(kit_id_arg)
            if not has_entitlement(current_user.id, kit_id):
                return jsonify({"error": "entitlement_required", "kit_id": kit_id}), 403
            return fn(*args, **kwargs)
        return wrapper
    return decorator
