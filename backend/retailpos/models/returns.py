from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class Return(db.Model):
    """
    Refund record against a sale. Append-only; a sale may collect several
    partial refunds before it is fully refunded.
    """
    __tablename__ = "returns"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    processed_by_user_id = db.Column(db.Integer, nullable=False)

    reason = db.Column(db.Text, nullable=False)
    refund_method = db.Column(db.String(32), nullable=False)
    refund_amount = db.Column(db.Numeric(12, 2), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    sale = db.relationship("Sale", backref=db.backref("returns", lazy=True, order_by="Return.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "processed_by_user_id": self.processed_by_user_id,
            "reason": self.reason,
            "refund_method": self.refund_method,
            "refund_amount": money_str(self.refund_amount),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
