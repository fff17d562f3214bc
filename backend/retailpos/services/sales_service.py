"""
Sale settlement service.

Composes a sale from line items and payments, checks that the payments
cover the grand total, then consumes stock for every line in array order.
Everything happens in one unit of work: if any line lacks stock, no Sale,
SaleItem, Payment or stock change from the attempt survives.

Totals:
    subtotal       = sum(qty * price)
    discount_total = sum(discount)
    tax_total      = sum(tax)
    grand_total    = subtotal - discount_total + tax_total
    line_total     = qty * price - discount + tax
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from ..extensions import db
from ..context import ActorContext
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Payment, PaymentMethod, RegisterSession, Sale, SaleItem, SaleStatus
from ..money import ZERO, approx_equal, money_sum, parse_money, quantize
from ..time_utils import parse_iso_datetime
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .stock_service import consume_stock
from .tenant_service import get_tenant_store_ids, require_store_in_tenant

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleLineInput:
    variant_id: int
    qty: int
    price: Decimal
    discount: Decimal = ZERO
    tax: Decimal = ZERO

    @property
    def line_total(self) -> Decimal:
        return quantize(self.qty * self.price - self.discount + self.tax)


@dataclass(frozen=True)
class PaymentInput:
    method: PaymentMethod
    amount: Decimal
    external_ref: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class SaleTotals:
    subtotal: Decimal
    discount_total: Decimal
    tax_total: Decimal
    grand_total: Decimal


def _positive_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return value


def parse_sale_lines(items) -> list[SaleLineInput]:
    if not items:
        raise ValidationError("At least one item is required")
    lines = []
    for raw in items:
        if isinstance(raw, SaleLineInput):
            lines.append(raw)
            continue
        if not isinstance(raw, dict):
            raise ValidationError("Invalid item")
        try:
            lines.append(SaleLineInput(
                variant_id=_positive_int(raw["variant_id"], "variant_id"),
                qty=_positive_int(raw["qty"], "qty"),
                price=parse_money(raw["price"], "price"),
                discount=parse_money(raw.get("discount", "0"), "discount"),
                tax=parse_money(raw.get("tax", "0"), "tax"),
            ))
        except KeyError as e:
            raise ValidationError(f"Missing required item field: {e.args[0]}")
    return lines


def parse_payments(payments) -> list[PaymentInput]:
    if not payments:
        raise ValidationError("At least one payment is required")
    parsed = []
    for raw in payments:
        if isinstance(raw, PaymentInput):
            parsed.append(raw)
            continue
        if not isinstance(raw, dict):
            raise ValidationError("Invalid payment")
        try:
            method = raw["method"]
            amount = raw["amount"]
        except KeyError as e:
            raise ValidationError(f"Missing required payment field: {e.args[0]}")
        try:
            method = PaymentMethod(method)
        except ValueError:
            raise ValidationError(f"Invalid payment method: {method}")
        parsed.append(PaymentInput(
            method=method,
            amount=parse_money(amount, "amount"),
            external_ref=raw.get("external_ref"),
            notes=raw.get("notes"),
        ))
    return parsed


def calculate_totals(lines: list[SaleLineInput]) -> SaleTotals:
    subtotal = money_sum(line.qty * line.price for line in lines)
    discount_total = money_sum(line.discount for line in lines)
    tax_total = money_sum(line.tax for line in lines)
    return SaleTotals(
        subtotal=subtotal,
        discount_total=discount_total,
        tax_total=tax_total,
        grand_total=quantize(subtotal - discount_total + tax_total),
    )


def _require_open_session(session_id: int, store_id: int) -> RegisterSession:
    session = lock_for_update(db.session.query(RegisterSession).filter_by(id=session_id)).first()
    if session is None or session.store_id != store_id:
        raise NotFoundError(f"Register session {session_id} not found for store {store_id}")
    if not session.is_open:
        raise ConflictError("Register session is closed")
    return session


def create_sale(
    ctx: ActorContext,
    *,
    store_id: int,
    register_session_id: int,
    items,
    payments,
    customer_id: int | None = None,
    notes: str | None = None,
) -> Sale:
    """
    Settle a sale and consume its stock.

    Raises:
        ValidationError: malformed lines/payments, or payment mismatch
        NotFoundError: store or register session not found
        ConflictError: register session already closed
        InsufficientStockError: any line lacks stock (whole sale rolled back)
    """
    lines = parse_sale_lines(items)
    tenders = parse_payments(payments)

    totals = calculate_totals(lines)
    paid_total = money_sum(p.amount for p in tenders)
    if not approx_equal(paid_total, totals.grand_total):
        logger.warning(
            "Sale rejected, payment mismatch: paid=%s grand_total=%s", paid_total, totals.grand_total,
        )
        raise ValidationError(
            "payment mismatch",
            details={"paid_total": str(paid_total), "grand_total": str(totals.grand_total)},
        )

    def _op():
        with unit_of_work():
            require_store_in_tenant(store_id, ctx.tenant_id)
            _require_open_session(register_session_id, store_id)

            sale = Sale(
                store_id=store_id,
                register_session_id=register_session_id,
                cashier_id=ctx.user_id,
                customer_id=customer_id,
                status=SaleStatus.PAID.value,
                subtotal=totals.subtotal,
                discount_total=totals.discount_total,
                tax_total=totals.tax_total,
                grand_total=totals.grand_total,
                notes=notes,
            )
            db.session.add(sale)
            db.session.flush()

            # Same variant on two lines is applied twice, in order, against one row.
            for line in lines:
                db.session.add(SaleItem(
                    sale_id=sale.id,
                    variant_id=line.variant_id,
                    qty=line.qty,
                    price=line.price,
                    discount=line.discount,
                    tax=line.tax,
                    line_total=line.line_total,
                ))
                consume_stock(
                    ctx,
                    variant_id=line.variant_id,
                    store_id=store_id,
                    qty=line.qty,
                    sale_id=sale.id,
                )

            for tender in tenders:
                db.session.add(Payment(
                    sale_id=sale.id,
                    method=tender.method.value,
                    amount=tender.amount,
                    external_ref=tender.external_ref,
                    notes=tender.notes,
                ))
            db.session.flush()

        logger.info(
            "Sale %s created: store=%s session=%s grand_total=%s lines=%d",
            sale.id, store_id, register_session_id, totals.grand_total, len(lines),
        )
        return sale

    return run_with_retry(_op)


def get_sale(ctx: ActorContext, sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if sale is None or sale.store_id not in get_tenant_store_ids(ctx.tenant_id):
        raise NotFoundError("Sale not found")
    return sale


def _as_datetime(value, field: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"Invalid {field} format")


def list_sales(
    ctx: ActorContext,
    *,
    store_id: int | None = None,
    customer_id: int | None = None,
    register_session_id: int | None = None,
    status: str | None = None,
    date_from=None,
    date_to=None,
    limit: int = 100,
) -> list[Sale]:
    """Tenant-scoped sales, newest first. Date bounds are inclusive."""
    if store_id is not None:
        require_store_in_tenant(store_id, ctx.tenant_id)
        store_ids = [store_id]
    else:
        store_ids = get_tenant_store_ids(ctx.tenant_id)

    q = db.session.query(Sale).filter(Sale.store_id.in_(store_ids))
    if customer_id is not None:
        q = q.filter(Sale.customer_id == customer_id)
    if register_session_id is not None:
        q = q.filter(Sale.register_session_id == register_session_id)
    if status is not None:
        try:
            q = q.filter(Sale.status == SaleStatus(status).value)
        except ValueError:
            raise ValidationError(f"Invalid sale status: {status}")
    date_from = _as_datetime(date_from, "date_from")
    date_to = _as_datetime(date_to, "date_to")
    if date_from is not None:
        q = q.filter(Sale.created_at >= date_from)
    if date_to is not None:
        q = q.filter(Sale.created_at <= date_to)

    return q.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(max(1, min(int(limit), 500))).all()
