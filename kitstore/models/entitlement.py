from datetime import datetime, timezone
from sqlalchemy import UniqueConstraint, func
from kitstore.extensions import db


def _utcnow():
    return datetime.now(timezone.utc)


class Entitlement(db.Model):
    """Proof that a user owns a kit. Written only by payment fulfillment; never updated or deleted."""
    __tablename__ = "entitlements"

    id = db.Column(db.Integer, primary_key=True)
    # Opaque identity-provider subject; no FK so externally issued ids work
    user_id = db.Column(db.String(64), nullable=False, index=True)
    kit_id = db.Column(db.String(64), db.ForeignKey("kits.id", ondelete="RESTRICT"), nullable=False, index=True)
    stripe_session_id = db.Column(db.String(255), nullable=True)

    purchased_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, server_default=func.now())

    kit = db.relationship("Kit", lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_id", "kit_id", name="uq_entitlements_user_kit"),
    )

    def to_dict(self, include_kit: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "kit_id": self.kit_id,
            "purchased_at": self.purchased_at.isoformat() if self.purchased_at else None,
        }
        if include_kit:
            data["kit"] = self.kit.to_dict() if self.kit else None
        return data

    def __repr__(self) -> str:
        return f"<Entitlement id={self.id} user_id={self.user_id!r} kit_id={self.kit_id!r}>"
