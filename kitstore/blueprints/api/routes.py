from flask import jsonify
from flask_login import current_user, login_required

from kitstore.errors import StorageError
from kitstore.security.entitlements import require_kit_entitlement
from kitstore.services import catalog, entitlements
from . import bp


@bp.get("/kits")
def list_kits():
    """Catalog listing, newest first. Outages are reported, never papered over."""
    try:
        kits = catalog.list_kits()
    except StorageError:
        return jsonify({"error": "catalog_unavailable"}), 503
    return jsonify({"kits": [k.to_dict() for k in kits]})


@bp.get("/kits/<kit_id>")
def get_kit(kit_id):
    kit = catalog.get_kit(kit_id)
    return jsonify({"kit": kit.to_dict()})


@bp.get("/me/kits")
@login_required
def my_kits():
    rows = entitlements.list_entitlements(current_user.id)
    return jsonify({"entitlements": [e.to_dict() for e in rows]})


@bp.get("/kits/<kit_id>/access")
@require_kit_entitlement("kit_id")
def kit_access(kit_id):
    # Editor gate: the client opens the editor only on 200
    return jsonify({"kit_id": kit_id, "owned": True})
