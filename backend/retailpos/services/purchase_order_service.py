# Overview: Service-layer operations for suppliers and purchase orders, including receipt into stock.

"""
Purchase Order Service

LIFECYCLE:
1. DRAFT: Created with its lines
2. SENT: Sent to supplier, or partially received
3. RECEIVED: Every line received in full
4. CANCELLED: Cancelled before anything was received

RECEIPT:
- A receipt batch is all-or-nothing: an unknown item id anywhere in the
  batch aborts the whole receipt.
- received_qty accumulates per line and may not exceed the ordered qty.
- Each received line adds stock at the PO's store through the stock engine
  (StockMove reason PURCHASE, reference "PO-{po_number}").
- After the batch, status is RECEIVED (received_date set) when every line is
  complete, otherwise SENT.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..context import ActorContext
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import (
    MoveReason,
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderStatus,
    Supplier,
)
from ..money import money_sum, parse_money, quantize
from ..time_utils import parse_iso_datetime, utcnow
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .stock_service import receive_stock
from .tenant_service import require_store_in_tenant

logger = logging.getLogger(__name__)


def po_reference(po: PurchaseOrder) -> str:
    return f"PO-{po.po_number}"


# =============================================================================
# SUPPLIERS
# =============================================================================

def create_supplier(
    ctx: ActorContext,
    *,
    name: str,
    contact_name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    address: str | None = None,
    tax_id: str | None = None,
    notes: str | None = None,
) -> Supplier:
    if not name or not name.strip():
        raise ValidationError("Name is required")
    if email and "@" not in email:
        raise ValidationError("Invalid email")

    with unit_of_work():
        supplier = Supplier(
            tenant_id=ctx.tenant_id,
            name=name.strip(),
            contact_name=contact_name,
            email=email or None,
            phone=phone,
            address=address,
            tax_id=tax_id,
            notes=notes,
        )
        db.session.add(supplier)
        db.session.flush()
    return supplier


def list_suppliers(ctx: ActorContext) -> list[Supplier]:
    return db.session.query(Supplier).filter_by(tenant_id=ctx.tenant_id).order_by(Supplier.name).all()


def _require_supplier(ctx: ActorContext, supplier_id: int) -> Supplier:
    supplier = db.session.query(Supplier).filter_by(id=supplier_id, tenant_id=ctx.tenant_id).first()
    if supplier is None:
        raise NotFoundError(f"Supplier {supplier_id} not found")
    return supplier


SUPPLIER_UPDATABLE_FIELDS = ("name", "contact_name", "email", "phone", "address", "tax_id", "notes")


def update_supplier(ctx: ActorContext, supplier_id: int, changes: dict) -> Supplier:
    """
    Apply a partial update to a supplier in the caller's tenant.

    Unknown keys are rejected rather than ignored.
    """
    unknown = sorted(set(changes) - set(SUPPLIER_UPDATABLE_FIELDS))
    if unknown:
        raise ValidationError("Unknown supplier fields", details={"fields": unknown})
    if "name" in changes and (not changes["name"] or not str(changes["name"]).strip()):
        raise ValidationError("Name is required")
    if changes.get("email") and "@" not in changes["email"]:
        raise ValidationError("Invalid email")

    with unit_of_work():
        supplier = _require_supplier(ctx, supplier_id)
        for key, value in changes.items():
            if key == "name":
                value = str(value).strip()
            elif key == "email":
                value = value or None
            setattr(supplier, key, value)
        db.session.flush()
    return supplier


def delete_supplier(ctx: ActorContext, supplier_id: int) -> None:
    """Delete a supplier that no purchase order references."""
    with unit_of_work():
        supplier = _require_supplier(ctx, supplier_id)
        in_use = db.session.query(PurchaseOrder.id).filter_by(supplier_id=supplier.id).first()
        if in_use is not None:
            raise ConflictError(
                "Supplier has purchase orders",
                details={"supplier_id": supplier.id},
            )
        db.session.delete(supplier)
    logger.info("Supplier %s deleted by user %s", supplier_id, ctx.user_id)


# =============================================================================
# PURCHASE ORDERS
# =============================================================================

def _parse_po_items(items) -> list[dict]:
    if not items:
        raise ValidationError("At least one item is required")
    parsed = []
    for raw in items:
        if not isinstance(raw, dict):
            raise ValidationError("Invalid item")
        try:
            variant_id = raw["variant_id"]
            qty = raw["qty"]
            cost = parse_money(raw["cost"], "cost")
        except KeyError as e:
            raise ValidationError(f"Missing required item field: {e.args[0]}")
        if isinstance(variant_id, bool) or not isinstance(variant_id, int) or variant_id <= 0:
            raise ValidationError("variant_id must be a positive integer")
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise ValidationError("qty must be a positive integer")
        discount = parse_money(raw.get("discount", "0"), "discount")
        parsed.append({
            "variant_id": variant_id,
            "qty": qty,
            "cost": cost,
            "discount": discount,
            "line_total": quantize(qty * cost - discount),
        })
    return parsed


def create_purchase_order(
    ctx: ActorContext,
    *,
    supplier_id: int,
    store_id: int,
    po_number: str,
    items,
    shipping_cost="0",
    tax_total="0",
    expected_date: datetime | str | None = None,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Create a DRAFT purchase order with its lines.

    subtotal = sum(qty * cost - discount); grand_total = subtotal + shipping + tax.

    Raises:
        ValidationError: malformed lines/amounts or missing po_number
        NotFoundError: supplier or store not in the caller's tenant
        ConflictError: po_number already used
    """
    if not po_number or not str(po_number).strip():
        raise ValidationError("PO number is required")
    po_number = str(po_number).strip()
    lines = _parse_po_items(items)
    shipping = parse_money(shipping_cost, "shipping_cost")
    tax = parse_money(tax_total, "tax_total")
    if isinstance(expected_date, str):
        try:
            expected_date = parse_iso_datetime(expected_date)
        except ValueError:
            raise ValidationError("Invalid expected_date format")

    subtotal = money_sum(line["line_total"] for line in lines)

    def _op():
        with unit_of_work():
            _require_supplier(ctx, supplier_id)
            require_store_in_tenant(store_id, ctx.tenant_id)

            if db.session.query(PurchaseOrder.id).filter_by(po_number=po_number).first():
                raise ConflictError("PO number already exists")

            po = PurchaseOrder(
                tenant_id=ctx.tenant_id,
                supplier_id=supplier_id,
                store_id=store_id,
                po_number=po_number,
                status=PurchaseOrderStatus.DRAFT.value,
                expected_date=expected_date,
                subtotal=subtotal,
                tax_total=tax,
                shipping_cost=shipping,
                grand_total=quantize(subtotal + shipping + tax),
                notes=notes,
                created_by_user_id=ctx.user_id,
            )
            db.session.add(po)
            try:
                db.session.flush()
            except IntegrityError:
                raise ConflictError("PO number already exists")

            for line in lines:
                db.session.add(PurchaseOrderItem(purchase_order_id=po.id, received_qty=0, **line))
            db.session.flush()

        logger.info("Purchase order %s created: store=%s grand_total=%s", po.po_number, store_id, po.grand_total)
        return po

    return run_with_retry(_op)


def _get_po(ctx: ActorContext, po_id: int, *, lock: bool = False) -> PurchaseOrder:
    query = db.session.query(PurchaseOrder).filter_by(id=po_id, tenant_id=ctx.tenant_id)
    if lock:
        query = lock_for_update(query)
    po = query.first()
    if po is None:
        raise NotFoundError("Purchase order not found")
    return po


def get_purchase_order(ctx: ActorContext, po_id: int) -> PurchaseOrder:
    return _get_po(ctx, po_id)


def list_purchase_orders(
    ctx: ActorContext,
    *,
    status: str | None = None,
    store_id: int | None = None,
) -> list[PurchaseOrder]:
    q = db.session.query(PurchaseOrder).filter_by(tenant_id=ctx.tenant_id)
    if status is not None:
        try:
            q = q.filter(PurchaseOrder.status == PurchaseOrderStatus(status).value)
        except ValueError:
            raise ValidationError(f"Invalid status: {status}")
    if store_id is not None:
        q = q.filter(PurchaseOrder.store_id == store_id)
    return q.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()


def mark_purchase_order_sent(ctx: ActorContext, po_id: int) -> PurchaseOrder:
    def _op():
        with unit_of_work():
            po = _get_po(ctx, po_id, lock=True)
            if po.status != PurchaseOrderStatus.DRAFT.value:
                raise ConflictError(f"Cannot send purchase order in {po.status} status")
            po.status = PurchaseOrderStatus.SENT.value
            db.session.flush()
        return po

    return run_with_retry(_op)


def cancel_purchase_order(ctx: ActorContext, po_id: int) -> PurchaseOrder:
    def _op():
        with unit_of_work():
            po = _get_po(ctx, po_id, lock=True)
            if po.status not in (PurchaseOrderStatus.DRAFT.value, PurchaseOrderStatus.SENT.value):
                raise ConflictError(f"Cannot cancel purchase order in {po.status} status")
            if any(item.received_qty > 0 for item in po.items):
                raise ConflictError("Cannot cancel a purchase order with received items")
            po.status = PurchaseOrderStatus.CANCELLED.value
            db.session.flush()
        logger.info("Purchase order %s cancelled", po.po_number)
        return po

    return run_with_retry(_op)


def receive_purchase_order(ctx: ActorContext, po_id: int, received_items) -> PurchaseOrder:
    """
    Receive a batch of PO lines into stock.

    Args:
        received_items: [{"item_id": int, "received_qty": int}, ...]

    Raises:
        ValidationError: empty batch, non-positive qty, or over-receipt
        NotFoundError: PO not found, or an item id not in this PO (whole batch aborted)
        ConflictError: PO cancelled or already fully received
    """
    if not received_items:
        raise ValidationError("At least one received item is required")
    batch = []
    for raw in received_items:
        try:
            item_id, qty = raw["item_id"], raw["received_qty"]
        except (KeyError, TypeError):
            raise ValidationError("Each received item needs item_id and received_qty")
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            raise ValidationError("received_qty must be a positive integer")
        batch.append((item_id, qty))

    def _op():
        with unit_of_work():
            po = _get_po(ctx, po_id, lock=True)
            if po.status == PurchaseOrderStatus.CANCELLED.value:
                raise ConflictError("Cannot receive a cancelled purchase order")
            if po.status == PurchaseOrderStatus.RECEIVED.value:
                raise ConflictError("Purchase order already received")

            lines = {item.id: item for item in po.items}
            pending: dict[int, int] = {}
            for item_id, qty in batch:
                line = lines.get(item_id)
                if line is None:
                    raise NotFoundError(f"Item {item_id} not found in PO")
                pending[item_id] = pending.get(item_id, 0) + qty
                if line.received_qty + pending[item_id] > line.qty:
                    raise ValidationError(
                        f"Item {item_id} over-received",
                        details={"ordered": line.qty, "received": line.received_qty, "requested": pending[item_id]},
                    )

            for item_id, qty in batch:
                line = lines[item_id]
                line.received_qty += qty
                receive_stock(
                    ctx,
                    variant_id=line.variant_id,
                    store_id=po.store_id,
                    qty=qty,
                    reason=MoveReason.PURCHASE,
                    reference=po_reference(po),
                )

            if po.is_fully_received:
                po.status = PurchaseOrderStatus.RECEIVED.value
                po.received_date = utcnow()
            else:
                po.status = PurchaseOrderStatus.SENT.value
                po.received_date = None
            db.session.flush()

        logger.info("Purchase order %s receipt posted: status=%s", po.po_number, po.status)
        return po

    return run_with_retry(_op)
