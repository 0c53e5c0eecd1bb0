from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List

from sqlalchemy import CheckConstraint, Index, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import validates

from kitstore.extensions import db

# Keep simple text+CHECK for evolvable asset types (no DB enum migration pain)
ASSET_TEXT = "text"
ASSET_GRAPHIC = "graphic"
ASSET_TEMPLATE = "template"
ASSET_TYPES = (ASSET_TEXT, ASSET_GRAPHIC, ASSET_TEMPLATE)


def _utcnow():
    return datetime.now(timezone.utc)


class Kit(db.Model):
    """A purchasable bundle of assets.

    Kits are created by catalog tooling (see ``flask kits``) and are read-only
    to the storefront. ``stripe_price_id`` is the authoritative price: ``price``
    is only what we display.
    """
    __tablename__ = "kits"
    __allow_unmapped__ = True

    id = db.Column(db.String(64), primary_key=True, default=lambda: uuid.uuid4().hex)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True, index=True)
    image_url = db.Column(db.String(1024), nullable=True)

    price = db.Column(db.Numeric(10, 2), nullable=False)
    stripe_price_id = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now(), onupdate=_utcnow)

    assets: List["KitAsset"] = db.relationship(
        "KitAsset",
        back_populates="kit",
        order_by="KitAsset.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_kits_created_at", created_at.desc()),
        CheckConstraint("price >= 0", name="ck_kits_price_non_negative"),
    )

    @validates("stripe_price_id")
    def _validate_price_ref(self, key, value):
        value = (value or "").strip()
        if not value:
            raise ValueError("stripe_price_id is required")
        if self.stripe_price_id is not None and value != self.stripe_price_id:
            raise ValueError("stripe_price_id is immutable once set")
        return value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "image_url": self.image_url,
            "price": float(self.price) if self.price is not None else None,
            "stripe_price_id": self.stripe_price_id,
            "assets": [a.to_dict() for a in self.assets],
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Kit id={self.id!r} name={self.name!r} price_ref={self.stripe_price_id!r}>"


class KitAsset(db.Model):
    __tablename__ = "kit_assets"

    id = db.Column(db.Integer, primary_key=True)
    kit_id = db.Column(db.String(64), db.ForeignKey("kits.id", ondelete="CASCADE"), nullable=False, index=True)
    asset_key = db.Column(db.String(120), nullable=False)  # the asset's id within its kit
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(20), nullable=False)
    description = db.Column(db.Text, nullable=True)
    content = db.Column(db.JSON().with_variant(JSONB, "postgresql"), nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    kit = db.relationship("Kit", back_populates="assets")

    __table_args__ = (
        UniqueConstraint("kit_id", "asset_key", name="uq_kit_assets_kit_key"),
        CheckConstraint(
            "type IN ('text','graphic','template')",
            name="ck_kit_assets_type_valid",
        ),
        Index("ix_kit_assets_kit_position", "kit_id", "position"),
    )

    @validates("type")
    def _validate_type(self, key, value):
        if value not in ASSET_TYPES:
            raise ValueError(f"asset type must be one of {', '.join(ASSET_TYPES)}")
        return value

    def to_dict(self) -> dict:
        return {
            "id": self.asset_key,
            "name": self.name,
            "type": self.type,
            "description": self.description,
        }

    def __repr__(self) -> str:
        return f"<KitAsset kit_id={self.kit_id!r} key={self.asset_key!r} type={self.type!r}>"
