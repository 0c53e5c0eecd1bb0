from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from kitstore.errors import InvalidRequest, NotFound, StorageError
from kitstore.extensions import db
from kitstore.models import Kit, KitAsset, ASSET_TYPES


def _clean_id(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def list_kits() -> List[Kit]:
    """All kits, newest first. Raises StorageError rather than returning an empty list on failure."""
    try:
        return list(
            db.session.execute(
                db.select(Kit).order_by(Kit.created_at.desc(), Kit.id.desc())
            ).scalars()
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Catalog unavailable", detail=str(exc)) from exc


def find_kit(kit_id: str) -> Optional[Kit]:
    kit_id = _clean_id(kit_id)
    if not kit_id:
        return None
    try:
        return db.session.get(Kit, kit_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Catalog unavailable", detail=str(exc)) from exc


def get_kit(kit_id: str) -> Kit:
    kit = find_kit(kit_id)
    if kit is None:
        raise NotFound()
    return kit


def parse_price(value: Any) -> Decimal:
    try:
        price = Decimal(str(value)).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidRequest("price must be a decimal amount") from exc
    if price < 0:
        raise InvalidRequest("price must be non-negative")
    return price


def build_assets(assets: Iterable[Dict[str, Any]]) -> List[KitAsset]:
    """Turn asset descriptors ({id, name, type, description, content?}) into ordered rows."""
    rows: List[KitAsset] = []
    seen = set()
    for position, raw in enumerate(assets or []):
        key = _clean_id(raw.get("id"))
        name = (raw.get("name") or "").strip()
        asset_type = (raw.get("type") or "").strip().lower()
        if not key or not name:
            raise InvalidRequest(f"asset #{position} needs an id and a name")
        if asset_type not in ASSET_TYPES:
            raise InvalidRequest(f"asset {key!r}: type must be one of {', '.join(ASSET_TYPES)}")
        if key in seen:
            raise InvalidRequest(f"duplicate asset id {key!r}")
        seen.add(key)
        rows.append(KitAsset(
            asset_key=key,
            name=name,
            type=asset_type,
            description=raw.get("description"),
            content=raw.get("content"),
            position=position,
        ))
    return rows


def create_kit(
    *,
    name: str,
    price: Any,
    stripe_price_id: str,
    kit_id: Optional[str] = None,
    description: Optional[str] = None,
    category: Optional[str] = None,
    image_url: Optional[str] = None,
    assets: Iterable[Dict[str, Any]] = (),
) -> Kit:
    """Catalog tooling entry point. Not reachable from the storefront API."""
    name = (name or "").strip()
    stripe_price_id = (stripe_price_id or "").strip()
    if not name:
        raise InvalidRequest("name is required")
    if not stripe_price_id:
        raise InvalidRequest("stripe_price_id is required")

    kit_id = _clean_id(kit_id) or None
    if kit_id and find_kit(kit_id) is not None:
        raise InvalidRequest(f"kit {kit_id!r} already exists")

    kit = Kit(
        name=name,
        description=description,
        category=category,
        image_url=image_url,
        price=parse_price(price),
        stripe_price_id=stripe_price_id,
    )
    if kit_id:
        kit.id = kit_id
    kit.assets = build_assets(assets)
    db.session.add(kit)
    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(detail=str(exc)) from exc
    return kit


def upsert_kit(data: Dict[str, Any]) -> tuple[Kit, bool]:
    """
    Create or refresh a kit from a seed record. Returns (kit, created).
    The price reference of an existing kit is never rewritten; a seed file that
    disagrees with the stored one is rejected.
    """
    kit_id = _clean_id(data.get("id"))
    if not kit_id:
        raise InvalidRequest("seed record needs an id")

    kit = find_kit(kit_id)
    if kit is None:
        kit = create_kit(
            kit_id=kit_id,
            name=data.get("name"),
            price=data.get("price"),
            stripe_price_id=data.get("stripe_price_id"),
            description=data.get("description"),
            category=data.get("category"),
            image_url=data.get("image_url"),
            assets=data.get("assets") or (),
        )
        return kit, True

    incoming_ref = (data.get("stripe_price_id") or "").strip()
    if incoming_ref and incoming_ref != kit.stripe_price_id:
        raise InvalidRequest(
            f"kit {kit_id!r}: stripe_price_id is immutable (stored {kit.stripe_price_id!r})"
        )

    if data.get("name"):
        kit.name = data["name"].strip()
    if "price" in data:
        kit.price = parse_price(data["price"])
    for field in ("description", "category", "image_url"):
        if field in data:
            setattr(kit, field, data[field])

    if "assets" in data:
        fresh = {a.asset_key: a for a in build_assets(data["assets"])}
        current = {a.asset_key: a for a in kit.assets}
        for key, row in current.items():
            if key not in fresh:
                kit.assets.remove(row)
        for key, new in fresh.items():
            row = current.get(key)
            if row is None:
                kit.assets.append(new)
                continue
            row.name, row.type, row.description = new.name, new.type, new.description
            row.content, row.position = new.content, new.position

    try:
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError(detail=str(exc)) from exc
    return kit, False
