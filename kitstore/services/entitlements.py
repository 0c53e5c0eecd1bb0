"""Entitlement store: who owns which kit.

``grant_entitlement`` is the only writer. It tries the insert first and relies on
``uq_entitlements_user_kit``, so concurrent duplicate grants (the same webhook
delivered twice at once) still end with exactly one row. The loser of the race
sees the winner's row and reports ``created=False``.
"""
from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from kitstore.errors import InvalidRequest, StorageError
from kitstore.extensions import db
from kitstore.models import Entitlement


def _require_ids(user_id, kit_id) -> Tuple[str, str]:
    user_id = str(user_id).strip() if user_id is not None else ""
    kit_id = str(kit_id).strip() if kit_id is not None else ""
    if not user_id or not kit_id:
        raise InvalidRequest("user_id and kit_id are required")
    return user_id, kit_id


def _find(user_id: str, kit_id: str) -> Optional[Entitlement]:
    return db.session.execute(
        db.select(Entitlement).filter_by(user_id=user_id, kit_id=kit_id)
    ).scalar_one_or_none()


def has_entitlement(user_id, kit_id) -> bool:
    user_id, kit_id = _require_ids(user_id, kit_id)
    try:
        return _find(user_id, kit_id) is not None
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(detail=str(exc)) from exc


def grant_entitlement(user_id, kit_id, *, stripe_session_id: Optional[str] = None) -> Tuple[Entitlement, bool]:
    """Insert-if-absent. Returns (record, created)."""
    user_id, kit_id = _require_ids(user_id, kit_id)

    record = Entitlement(user_id=user_id, kit_id=kit_id, stripe_session_id=stripe_session_id)
    db.session.add(record)
    try:
        db.session.commit()
        return record, True
    except IntegrityError as exc:
        db.session.rollback()
        try:
            existing = _find(user_id, kit_id)
        except SQLAlchemyError as lookup_exc:
            db.session.rollback()
            raise StorageError(detail=str(lookup_exc)) from lookup_exc
        if existing is None:
            # Not the uniqueness constraint (e.g. unknown kit_id FK); nothing was granted
            raise StorageError(detail=str(exc.orig)) from exc
        return existing, False
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(detail=str(exc)) from exc


def list_entitlements(user_id) -> List[Entitlement]:
    """A user's entitlements joined with their kits, newest purchase first."""
    user_id = str(user_id).strip() if user_id is not None else ""
    if not user_id:
        raise InvalidRequest("user_id is required")
    try:
        return list(
            db.session.execute(
                db.select(Entitlement)
                .filter_by(user_id=user_id)
                .order_by(Entitlement.purchased_at.desc(), Entitlement.id.desc())
            ).unique().scalars()
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(detail=str(exc)) from exc
