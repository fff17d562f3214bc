# Overview: Append-only stock move ledger; one row per on-hand change.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..errors import ValidationError
from ..models import StockMove, MoveReason
"""
Stock Move Ledger Invariants (authoritative)

- Append-only: rows are inserted, never updated or deleted.
- Every change to a StockItem's qty_on_hand is paired with exactly one move,
  written inside the same unit of work as the quantity change.
- qty is the positive magnitude; direction is carried by from/to store.
- No domain logic here beyond shape validation.
"""


def append_stock_move(
    *,
    variant_id: int,
    reason: MoveReason,
    qty: int,
    performed_by_user_id: int,
    from_store_id: int | None = None,
    to_store_id: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
) -> StockMove:
    if qty <= 0:
        raise ValidationError("Stock move quantity must be positive")
    if from_store_id is None and to_store_id is None:
        raise ValidationError("Stock move needs a source or destination store")

    move = StockMove(
        variant_id=variant_id,
        from_store_id=from_store_id,
        to_store_id=to_store_id,
        qty=qty,
        reason=MoveReason(reason).value,
        reference=reference,
        performed_by_user_id=performed_by_user_id,
        notes=notes,
    )
    db.session.add(move)
    db.session.flush()  # ensures move.id is assigned without committing
    return move


def query_stock_moves(
    *,
    store_ids: list[int],
    variant_id: int | None = None,
    store_id: int | None = None,
    reason: MoveReason | str | None = None,
    reference: str | None = None,
    since: datetime | None = None,
    limit: int = 200,
) -> list[StockMove]:
    """Moves touching any of store_ids, newest first. As-of filtering is inclusive."""
    q = db.session.query(StockMove).filter(
        db.or_(StockMove.from_store_id.in_(store_ids), StockMove.to_store_id.in_(store_ids))
    )
    if variant_id is not None:
        q = q.filter(StockMove.variant_id == variant_id)
    if store_id is not None:
        q = q.filter(db.or_(StockMove.from_store_id == store_id, StockMove.to_store_id == store_id))
    if reason is not None:
        q = q.filter(StockMove.reason == MoveReason(reason).value)
    if reference is not None:
        q = q.filter(StockMove.reference == reference)
    if since is not None:
        q = q.filter(StockMove.created_at >= since)
    return q.order_by(StockMove.created_at.desc(), StockMove.id.desc()).limit(limit).all()


def net_moved_qty(variant_id: int, store_id: int) -> int:
    """Sum of signed move quantities at one store; equals on-hand for a fully ledgered row."""
    moves = db.session.query(StockMove).filter(
        StockMove.variant_id == variant_id,
        db.or_(StockMove.from_store_id == store_id, StockMove.to_store_id == store_id),
    ).all()
    return sum(move.signed_qty_for(store_id) for move in moves)
