from __future__ import annotations

from enum import Enum

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class SaleStatus(str, Enum):
    PAID = "PAID"
    PARTIAL_REFUND = "PARTIAL_REFUND"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    QR = "QR"
    VOUCHER = "VOUCHER"
    BANK_TRANSFER = "BANK_TRANSFER"


class Sale(db.Model):
    """
    Settled sale.

    INVARIANTS:
    - grand_total == subtotal - discount_total + tax_total at creation
    - sum(payments.amount) equals grand_total within the money tolerance
    - status only moves forward: PAID -> PARTIAL_REFUND -> REFUNDED, or
      PAID -> REFUNDED; never back to PAID

    Sale items and payments are immutable once written. Refunds append
    Return rows instead of editing the sale.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_store_status_created", "store_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    register_session_id = db.Column(db.Integer, db.ForeignKey("register_sessions.id"), nullable=False, index=True)
    cashier_id = db.Column(db.Integer, nullable=False, index=True)
    customer_id = db.Column(db.Integer, nullable=True, index=True)

    status = db.Column(db.String(16), nullable=False, default=SaleStatus.PAID.value, index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    tax_total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount_total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    grand_total = db.Column(db.Numeric(12, 2), nullable=False)

    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    store = db.relationship("Store")
    register_session = db.relationship("RegisterSession", backref=db.backref("sales", lazy=True))
    items = db.relationship("SaleItem", back_populates="sale", order_by="SaleItem.id", lazy=True)
    payments = db.relationship("Payment", back_populates="sale", order_by="Payment.id", lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "register_session_id": self.register_session_id,
            "cashier_id": self.cashier_id,
            "customer_id": self.customer_id,
            "status": self.status,
            "subtotal": money_str(self.subtotal),
            "tax_total": money_str(self.tax_total),
            "discount_total": money_str(self.discount_total),
            "grand_total": money_str(self.grand_total),
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_lines:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class SaleItem(db.Model):
    """Sale line: line_total = qty * price - discount + tax."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("qty > 0", name="ck_sale_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, nullable=False, index=True)

    qty = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "variant_id": self.variant_id,
            "qty": self.qty,
            "price": money_str(self.price),
            "discount": money_str(self.discount),
            "tax": money_str(self.tax),
            "line_total": money_str(self.line_total),
            "created_at": to_utc_z(self.created_at),
        }


class Payment(db.Model):
    """
    Tender recorded against a sale. Split payments are several rows.

    Immutable. CASH rows feed register reconciliation through
    sale.register_session_id.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    method = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)

    # Card auth code, QR transaction id, voucher number, etc.
    external_ref = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    sale = db.relationship("Sale", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "method": self.method,
            "amount": money_str(self.amount),
            "external_ref": self.external_ref,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
