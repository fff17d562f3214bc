from __future__ import annotations

from enum import Enum

from ..extensions import db
from ..time_utils import to_utc_z


class MoveReason(str, Enum):
    ADJUSTMENT = "ADJUSTMENT"
    TRANSFER = "TRANSFER"
    SALE = "SALE"
    PURCHASE = "PURCHASE"
    RETURN = "RETURN"


class StockItem(db.Model):
    """
    Quantity record for one variant at one store.

    INVARIANT: qty_available == qty_on_hand - qty_reserved after every
    committed operation. Rows are created lazily by the first mutation that
    targets a (variant, store) pair and are never deleted; zero-stock rows
    remain as history.

    version_id guards against lost updates on databases that ignore
    SELECT ... FOR UPDATE (a concurrent writer raises StaleDataError).
    """
    __tablename__ = "stock_items"
    __table_args__ = (
        db.UniqueConstraint("variant_id", "store_id", name="uq_stock_items_variant_store"),
        db.CheckConstraint("qty_reserved >= 0", name="ck_stock_items_reserved_nonneg"),
        db.CheckConstraint("reorder_point >= 0", name="ck_stock_items_reorder_nonneg"),
        db.Index("ix_stock_items_store_updated", "store_id", "updated_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    # Catalog variants are opaque foreign keys owned by the catalog service
    variant_id = db.Column(db.Integer, nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    qty_on_hand = db.Column(db.Integer, nullable=False, default=0)
    qty_reserved = db.Column(db.Integer, nullable=False, default=0)
    qty_available = db.Column(db.Integer, nullable=False, default=0)
    reorder_point = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store")
    __mapper_args__ = {"version_id_col": version_id}

    def apply_delta(self, delta: int) -> None:
        """Shift on-hand by delta and re-derive availability; reserved is untouched."""
        self.qty_on_hand = (self.qty_on_hand or 0) + delta
        self.qty_available = self.qty_on_hand - (self.qty_reserved or 0)

    @property
    def is_consistent(self) -> bool:
        return self.qty_available == self.qty_on_hand - self.qty_reserved

    def __repr__(self) -> str:
        return (
            f"<StockItem variant_id={self.variant_id} store_id={self.store_id} "
            f"on_hand={self.qty_on_hand} reserved={self.qty_reserved}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "store_id": self.store_id,
            "qty_on_hand": self.qty_on_hand,
            "qty_reserved": self.qty_reserved,
            "qty_available": self.qty_available,
            "reorder_point": self.reorder_point,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMove(db.Model):
    """
    Append-only audit entry for one on-hand change.

    qty is always the positive magnitude moved. Direction is given by the
    store columns: to_store_id only = stock in, from_store_id only = stock
    out, both = transfer.
    """
    __tablename__ = "stock_moves"
    __table_args__ = (
        db.CheckConstraint("qty > 0", name="ck_stock_moves_qty_positive"),
        db.Index("ix_stock_moves_variant_created", "variant_id", "created_at"),
        db.Index("ix_stock_moves_reference", "reference"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, nullable=False, index=True)
    from_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)
    to_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    qty = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False, index=True)
    reference = db.Column(db.String(255), nullable=True)
    performed_by_user_id = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def signed_qty_for(self, store_id: int) -> int:
        """On-hand delta this move applied at store_id."""
        delta = 0
        if self.to_store_id == store_id:
            delta += self.qty
        if self.from_store_id == store_id:
            delta -= self.qty
        return delta

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "from_store_id": self.from_store_id,
            "to_store_id": self.to_store_id,
            "qty": self.qty,
            "reason": self.reason,
            "reference": self.reference,
            "performed_by_user_id": self.performed_by_user_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
