"""
Refund service.

Records refunds against settled sales and restores stock on full refunds.

RULES:
- A REFUNDED sale cannot be refunded again (ConflictError).
- Refunds accumulate across Return rows. An amount reaching or passing the
  grand total is a full refund.
- Full refund: accumulated refunds >= grand_total - tolerance. Status becomes
  REFUNDED and every sale line's quantity is restored to the sale's store
  (StockMove reason RETURN, reference "SALE-{id}").
- Anything less is a partial refund: status PARTIAL_REFUND, no stock effect,
  because a partial amount does not say which units came back.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from ..extensions import db
from ..context import ActorContext
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import PaymentMethod, Return, Sale, SaleItem, SaleStatus
from ..money import ZERO, money_sum, parse_money, quantize, tolerance
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .stock_service import restore_stock, sale_reference
from .tenant_service import get_tenant_store_ids

logger = logging.getLogger(__name__)


def refunded_total(sale_id: int) -> Decimal:
    amounts = db.session.query(Return.refund_amount).filter_by(sale_id=sale_id).all()
    return money_sum(row.refund_amount for row in amounts)


def _get_sale_for_update(ctx: ActorContext, sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None or sale.store_id not in get_tenant_store_ids(ctx.tenant_id):
        raise NotFoundError("Sale not found")
    return sale


def refund_sale(
    ctx: ActorContext,
    *,
    sale_id: int,
    reason: str,
    refund_method,
    refund_amount,
    notes: str | None = None,
) -> Return:
    """
    Refund a sale in full or in part.

    Raises:
        ValidationError: empty reason, bad method or bad amount
        NotFoundError: sale not found in the caller's tenant
        ConflictError: sale already fully refunded
    """
    if not reason or not str(reason).strip():
        raise ValidationError("Reason is required")
    try:
        refund_method = PaymentMethod(refund_method)
    except ValueError:
        raise ValidationError(f"Invalid refund method: {refund_method}")
    refund_amount = parse_money(refund_amount, "refund_amount")
    if refund_amount <= ZERO:
        raise ValidationError("refund_amount must be positive")

    def _op():
        with unit_of_work():
            sale = _get_sale_for_update(ctx, sale_id)
            if sale.status == SaleStatus.REFUNDED.value:
                raise ConflictError("Sale already refunded")

            previous = refunded_total(sale.id)
            cumulative = quantize(previous + refund_amount)
            is_full_refund = cumulative >= sale.grand_total - tolerance()

            record = Return(
                sale_id=sale.id,
                processed_by_user_id=ctx.user_id,
                reason=str(reason).strip(),
                refund_method=refund_method.value,
                refund_amount=refund_amount,
                notes=notes,
            )
            db.session.add(record)

            sale.status = (SaleStatus.REFUNDED if is_full_refund else SaleStatus.PARTIAL_REFUND).value
            db.session.flush()

            if is_full_refund:
                items = db.session.query(SaleItem).filter_by(sale_id=sale.id).order_by(SaleItem.id).all()
                for item in items:
                    restore_stock(
                        ctx,
                        variant_id=item.variant_id,
                        store_id=sale.store_id,
                        qty=item.qty,
                        reference=sale_reference(sale.id),
                        notes=f"Refund {record.id}",
                    )

        logger.info(
            "Sale %s refunded %s via %s (%s)",
            sale_id, refund_amount, refund_method.value, "full" if is_full_refund else "partial",
        )
        return record

    return run_with_retry(_op)


def list_returns(ctx: ActorContext, sale_id: int) -> list[Return]:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if sale is None or sale.store_id not in get_tenant_store_ids(ctx.tenant_id):
        raise NotFoundError("Sale not found")
    return db.session.query(Return).filter_by(sale_id=sale_id).order_by(Return.id).all()
