from sqlalchemy import func, text, true
from sqlalchemy.dialects.postgresql import JSONB
from kitstore.extensions import db


class BillingEventLog(db.Model):
    """Audit trail of provider webhook deliveries (one row per Stripe event id)."""
    __tablename__ = "billing_event_logs"

    id = db.Column(db.Integer, primary_key=True)
    stripe_event_id = db.Column(db.String(255), nullable=False, unique=True, index=True)
    type = db.Column(db.String(80), nullable=False, index=True)
    signature_valid = db.Column(db.Boolean, nullable=False, server_default=true())
    payload = db.Column(db.JSON().with_variant(JSONB, "postgresql"), nullable=False, default=dict)
    retries = db.Column(db.Integer, nullable=False, server_default=text("0"), default=0)
    notes = db.Column(db.String(255), nullable=True)

    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    def __repr__(self) -> str:
        return f"<BillingEventLog id={self.id} stripe_event_id={self.stripe_event_id!r} type={self.type!r}>"
