# Overview: Stock mutation engine; per-(variant, store) quantities plus their ledger entries.

"""
Stock Invariants (authoritative)

Quantity model:
- StockItem holds the mutable quantities for one (variant, store) pair.
- qty_available == qty_on_hand - qty_reserved after every operation.
- qty_reserved is carried but no operation here changes it.

Mutation rules:
- Every operation is one unit of work: the StockItem read-modify-write and
  its StockMove insert commit together or not at all.
- The StockItem row is locked (FOR UPDATE) before the new quantity is
  computed from the old one. Rows are created through get_or_create_stock_item
  only.
- ADJUSTMENT may drive on-hand negative (it is a correction); TRANSFER checks
  availability at the source; SALE consumption fails when on-hand would go
  negative; PURCHASE and RETURN only add.

Audit:
- Each on-hand change appends exactly one StockMove, including SALE
  consumption (reference "SALE-{id}").
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..context import ActorContext
from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..models import StockItem, StockMove, MoveReason
from ..time_utils import parse_iso_datetime
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .ledger_service import append_stock_move, query_stock_moves
from .tenant_service import get_tenant_store_ids, require_store_in_tenant

logger = logging.getLogger(__name__)


def sale_reference(sale_id: int) -> str:
    return f"SALE-{sale_id}"


def _require_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    return value


def _require_positive_qty(qty) -> int:
    qty = _require_int(qty, "qty")
    if qty <= 0:
        raise ValidationError("qty must be positive")
    return qty


# =============================================================================
# STOCK ITEM STORE
# =============================================================================

def _find_stock_item(variant_id: int, store_id: int, *, lock: bool) -> StockItem | None:
    query = db.session.query(StockItem).filter_by(variant_id=variant_id, store_id=store_id)
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_or_create_stock_item(variant_id: int, store_id: int, *, lock: bool = True) -> StockItem:
    """
    Return the StockItem for (variant, store), creating a zero row if missing.

    The single find-or-create primitive for every mutation path. The insert
    runs in a SAVEPOINT so that losing a race against a concurrent insert of
    the same pair (unique constraint) falls back to re-reading that row.
    """
    item = _find_stock_item(variant_id, store_id, lock=lock)
    if item is not None:
        return item

    try:
        with db.session.begin_nested():
            item = StockItem(
                variant_id=variant_id,
                store_id=store_id,
                qty_on_hand=0,
                qty_reserved=0,
                qty_available=0,
                reorder_point=0,
            )
            db.session.add(item)
    except IntegrityError:
        item = _find_stock_item(variant_id, store_id, lock=lock)
        if item is None:
            raise
    return item


def get_stock_level(ctx: ActorContext, variant_id: int, store_id: int) -> StockItem:
    require_store_in_tenant(store_id, ctx.tenant_id)
    item = _find_stock_item(variant_id, store_id, lock=False)
    if item is None:
        raise NotFoundError("Stock not found", details={"variant_id": variant_id, "store_id": store_id})
    return item


def list_stock_by_store(ctx: ActorContext, store_id: int) -> list[StockItem]:
    require_store_in_tenant(store_id, ctx.tenant_id)
    return (
        db.session.query(StockItem)
        .filter_by(store_id=store_id)
        .order_by(StockItem.updated_at.desc(), StockItem.id.desc())
        .all()
    )


def list_low_stock(ctx: ActorContext, store_id: int, threshold: int | None = None) -> list[StockItem]:
    """
    Rows at or below their reorder point.

    When threshold is given it replaces every row's reorder point.
    """
    require_store_in_tenant(store_id, ctx.tenant_id)
    q = db.session.query(StockItem).filter_by(store_id=store_id)
    if threshold is not None:
        threshold = _require_int(threshold, "threshold")
        q = q.filter(StockItem.qty_available <= threshold)
    else:
        q = q.filter(StockItem.qty_available <= StockItem.reorder_point)
    return q.order_by(StockItem.qty_available.asc(), StockItem.id.asc()).all()


def list_stock_moves(
    ctx: ActorContext,
    *,
    variant_id: int | None = None,
    store_id: int | None = None,
    reason: str | None = None,
    reference: str | None = None,
    since=None,
    limit: int = 200,
) -> list[StockMove]:
    if store_id is not None:
        require_store_in_tenant(store_id, ctx.tenant_id)
    if reason is not None:
        try:
            reason = MoveReason(reason)
        except ValueError:
            raise ValidationError(f"Unknown move reason: {reason}")
    if isinstance(since, str):
        try:
            since = parse_iso_datetime(since)
        except ValueError:
            raise ValidationError("Invalid since format")

    return query_stock_moves(
        store_ids=get_tenant_store_ids(ctx.tenant_id),
        variant_id=variant_id,
        store_id=store_id,
        reason=reason,
        reference=reference,
        since=since,
        limit=max(1, min(int(limit), 1000)),
    )


def set_reorder_point(ctx: ActorContext, *, variant_id: int, store_id: int, reorder_point: int) -> StockItem:
    """Reorder point is not a quantity change, so no move is recorded."""
    reorder_point = _require_int(reorder_point, "reorder_point")
    if reorder_point < 0:
        raise ValidationError("reorder_point must not be negative")

    def _op():
        with unit_of_work():
            require_store_in_tenant(store_id, ctx.tenant_id)
            item = get_or_create_stock_item(variant_id, store_id)
            item.reorder_point = reorder_point
            db.session.flush()
        return item

    return run_with_retry(_op)


# =============================================================================
# MUTATIONS
# =============================================================================

def adjust_stock(
    ctx: ActorContext,
    *,
    variant_id: int,
    store_id: int,
    qty: int,
    reason: str,
    notes: str | None = None,
) -> StockItem:
    """
    Correct on-hand by a signed delta (positive = found/added, negative = shrinkage).

    No floor at zero: a negative adjustment against missing stock leaves a
    row with negative on-hand, because adjustments record corrections.
    Calling this twice applies the delta twice.
    """
    qty = _require_int(qty, "qty")
    if qty == 0:
        raise ValidationError("qty must not be zero")
    if not reason or not reason.strip():
        raise ValidationError("Reason is required")

    move_notes = reason.strip() if not notes else f"{reason.strip()}: {notes}"

    def _op():
        with unit_of_work():
            require_store_in_tenant(store_id, ctx.tenant_id)
            item = get_or_create_stock_item(variant_id, store_id)
            item.apply_delta(qty)

            append_stock_move(
                variant_id=variant_id,
                reason=MoveReason.ADJUSTMENT,
                qty=abs(qty),
                to_store_id=store_id if qty > 0 else None,
                from_store_id=store_id if qty < 0 else None,
                performed_by_user_id=ctx.user_id,
                notes=move_notes,
            )
            db.session.flush()
        logger.info(
            "Stock adjusted: variant=%s store=%s delta=%+d on_hand=%s",
            variant_id, store_id, qty, item.qty_on_hand,
        )
        return item

    return run_with_retry(_op)


def transfer_stock(
    ctx: ActorContext,
    *,
    variant_id: int,
    from_store_id: int,
    to_store_id: int,
    qty: int,
    notes: str | None = None,
) -> tuple[StockItem, StockItem]:
    """
    Move qty units between two stores of the same tenant.

    Aggregate on-hand across the two stores is conserved. Returns the
    (source, destination) rows.
    """
    qty = _require_positive_qty(qty)
    if from_store_id == to_store_id:
        raise ValidationError("Cannot transfer to the same store")

    def _op():
        with unit_of_work():
            require_store_in_tenant(from_store_id, ctx.tenant_id)
            require_store_in_tenant(to_store_id, ctx.tenant_id)

            # Lock both rows in store-id order so crossing transfers cannot deadlock.
            if from_store_id < to_store_id:
                source = _find_stock_item(variant_id, from_store_id, lock=True)
                destination = get_or_create_stock_item(variant_id, to_store_id)
            else:
                destination = get_or_create_stock_item(variant_id, to_store_id)
                source = _find_stock_item(variant_id, from_store_id, lock=True)

            if source is None or source.qty_available < qty:
                logger.warning(
                    "Transfer rejected: variant=%s from=%s requested=%s available=%s",
                    variant_id, from_store_id, qty, source.qty_available if source else 0,
                )
                raise InsufficientStockError(
                    variant_id,
                    store_id=from_store_id,
                    requested=qty,
                    on_hand=source.qty_on_hand if source else 0,
                )

            source.apply_delta(-qty)
            destination.apply_delta(qty)

            append_stock_move(
                variant_id=variant_id,
                reason=MoveReason.TRANSFER,
                qty=qty,
                from_store_id=from_store_id,
                to_store_id=to_store_id,
                performed_by_user_id=ctx.user_id,
                notes=notes,
            )
            db.session.flush()
        logger.info(
            "Stock transferred: variant=%s %s -> %s qty=%s",
            variant_id, from_store_id, to_store_id, qty,
        )
        return source, destination

    return run_with_retry(_op)


def receive_stock(
    ctx: ActorContext,
    *,
    variant_id: int,
    store_id: int,
    qty: int,
    reason: MoveReason | str = MoveReason.PURCHASE,
    reference: str | None = None,
    notes: str | None = None,
) -> StockItem:
    """Add inbound units (purchase receipt or refund restock) at one store."""
    qty = _require_positive_qty(qty)
    try:
        reason = MoveReason(reason)
    except ValueError:
        raise ValidationError(f"Unknown move reason: {reason}")
    if reason not in (MoveReason.PURCHASE, MoveReason.RETURN):
        raise ValidationError("Receive reason must be PURCHASE or RETURN")

    def _op():
        with unit_of_work():
            require_store_in_tenant(store_id, ctx.tenant_id)
            item = get_or_create_stock_item(variant_id, store_id)
            item.apply_delta(qty)

            append_stock_move(
                variant_id=variant_id,
                reason=reason,
                qty=qty,
                to_store_id=store_id,
                reference=reference,
                performed_by_user_id=ctx.user_id,
                notes=notes,
            )
            db.session.flush()
        logger.info(
            "Stock received: variant=%s store=%s qty=%s reason=%s ref=%s",
            variant_id, store_id, qty, reason.value, reference,
        )
        return item

    return run_with_retry(_op)


def consume_stock(
    ctx: ActorContext,
    *,
    variant_id: int,
    store_id: int,
    qty: int,
    sale_id: int,
) -> StockItem:
    """
    Deduct sold units for one sale line.

    A missing row counts as zero stock. Fails with InsufficientStockError
    when on-hand would go negative; inside create_sale that rolls back the
    whole sale.
    """
    qty = _require_positive_qty(qty)

    def _op():
        with unit_of_work():
            require_store_in_tenant(store_id, ctx.tenant_id)
            item = _find_stock_item(variant_id, store_id, lock=True)
            on_hand = item.qty_on_hand if item is not None else 0
            if on_hand - qty < 0:
                logger.warning(
                    "Sale consumption rejected: variant=%s store=%s requested=%s on_hand=%s",
                    variant_id, store_id, qty, on_hand,
                )
                raise InsufficientStockError(variant_id, store_id=store_id, requested=qty, on_hand=on_hand)

            item.apply_delta(-qty)
            append_stock_move(
                variant_id=variant_id,
                reason=MoveReason.SALE,
                qty=qty,
                from_store_id=store_id,
                reference=sale_reference(sale_id),
                performed_by_user_id=ctx.user_id,
            )
            db.session.flush()
        return item

    return run_with_retry(_op)


def restore_stock(
    ctx: ActorContext,
    *,
    variant_id: int,
    store_id: int,
    qty: int,
    reference: str | None = None,
    notes: str | None = None,
) -> StockItem:
    """Inverse of consume_stock, used by full refunds."""
    return receive_stock(
        ctx,
        variant_id=variant_id,
        store_id=store_id,
        qty=qty,
        reason=MoveReason.RETURN,
        reference=reference,
        notes=notes,
    )


# =============================================================================
# INVARIANT CHECKS
# =============================================================================

def find_inconsistent_stock_items(store_ids: list[int] | None = None) -> list[StockItem]:
    """Rows violating qty_available == qty_on_hand - qty_reserved."""
    q = db.session.query(StockItem).filter(
        StockItem.qty_available != StockItem.qty_on_hand - StockItem.qty_reserved
    )
    if store_ids is not None:
        q = q.filter(StockItem.store_id.in_(store_ids))
    return q.all()
