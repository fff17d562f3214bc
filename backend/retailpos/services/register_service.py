"""
Register session tracker.

Opens and closes cash-drawer sessions and reconciles the drawer on close.

DESIGN PRINCIPLES:
- At most one open session per store. The open check is backed by a partial
  unique index, so of two concurrent opens exactly one commits and the other
  is reported as a conflict.
- Sessions are immutable once closed.
- expected_cash = opening_float + CASH payments of sales recorded against
  the session (by register_session_id, not by time range).
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..context import ActorContext
from ..errors import ConflictError, NotFoundError
from ..models import Payment, PaymentMethod, RegisterSession, Sale
from ..money import ZERO, parse_money, quantize
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry, unit_of_work
from .tenant_service import require_store_in_tenant

logger = logging.getLogger(__name__)


def _find_open_session(store_id: int) -> RegisterSession | None:
    return db.session.query(RegisterSession).filter(
        RegisterSession.store_id == store_id,
        RegisterSession.closed_at.is_(None),
    ).first()


def _get_session_in_tenant(ctx: ActorContext, session_id: int, *, lock: bool = False) -> RegisterSession:
    query = db.session.query(RegisterSession).filter_by(id=session_id)
    if lock:
        query = lock_for_update(query)
    session = query.first()
    if session is None:
        raise NotFoundError("Register session not found")
    try:
        require_store_in_tenant(session.store_id, ctx.tenant_id)
    except NotFoundError:
        raise NotFoundError("Register session not found")
    return session


def cash_payments_total(session_id: int) -> Decimal:
    total = db.session.query(func.coalesce(func.sum(Payment.amount), 0)).join(
        Sale, Payment.sale_id == Sale.id
    ).filter(
        Sale.register_session_id == session_id,
        Payment.method == PaymentMethod.CASH.value,
    ).scalar()
    return quantize(Decimal(str(total or 0)))


def open_register(ctx: ActorContext, *, store_id: int, opening_float) -> RegisterSession:
    """
    Open a new session on a store's register.

    Raises:
        ConflictError: If the store already has an open session
    """
    opening_float = parse_money(opening_float, "opening_float")

    def _op():
        with unit_of_work():
            require_store_in_tenant(store_id, ctx.tenant_id)

            existing = _find_open_session(store_id)
            if existing is not None:
                raise ConflictError(
                    "Register already open for this store",
                    details={"register_session_id": existing.id},
                )

            session = RegisterSession(
                store_id=store_id,
                opened_by_user_id=ctx.user_id,
                opening_float=opening_float,
                opened_at=utcnow(),
            )
            db.session.add(session)
            try:
                db.session.flush()
            except IntegrityError:
                # Lost the race against a concurrent open (partial unique index).
                raise ConflictError("Register already open for this store")

        logger.info("Register session %s opened: store=%s float=%s", session.id, store_id, opening_float)
        return session

    try:
        return run_with_retry(_op)
    except IntegrityError:
        raise ConflictError("Register already open for this store")


def close_register(
    ctx: ActorContext,
    *,
    session_id: int,
    actual_cash,
    notes: str | None = None,
) -> RegisterSession:
    """
    Close a session and calculate the cash discrepancy.

    Returns:
        Closed session with expected_cash, actual_cash and discrepancy set
    """
    actual_cash = parse_money(actual_cash, "actual_cash")

    def _op():
        with unit_of_work():
            session = _get_session_in_tenant(ctx, session_id, lock=True)
            if not session.is_open:
                raise ConflictError("Register already closed")

            expected = quantize(session.opening_float + cash_payments_total(session.id))

            session.closed_at = utcnow()
            session.closed_by_user_id = ctx.user_id
            session.expected_cash = expected
            session.actual_cash = actual_cash
            session.discrepancy = quantize(actual_cash - expected)
            session.notes = notes
            db.session.flush()

        logger.info(
            "Register session %s closed: expected=%s actual=%s discrepancy=%s",
            session.id, session.expected_cash, session.actual_cash, session.discrepancy,
        )
        if session.discrepancy != ZERO:
            logger.warning("Register session %s closed with discrepancy %s", session.id, session.discrepancy)
        return session

    return run_with_retry(_op)


def get_current_session(ctx: ActorContext, store_id: int) -> RegisterSession:
    require_store_in_tenant(store_id, ctx.tenant_id)
    session = _find_open_session(store_id)
    if session is None:
        raise NotFoundError("No open register session")
    return session


def get_session(ctx: ActorContext, session_id: int) -> RegisterSession:
    return _get_session_in_tenant(ctx, session_id)


def get_session_summary(ctx: ActorContext, session_id: int) -> dict:
    """
    Reconciliation view of one session.

    Returns:
        - Session details
        - Sales count and totals per payment method
        - Expected cash (running figure while the session is open)
    """
    session = _get_session_in_tenant(ctx, session_id)

    rows = db.session.query(
        Payment.method,
        func.coalesce(func.sum(Payment.amount), 0),
    ).join(Sale, Payment.sale_id == Sale.id).filter(
        Sale.register_session_id == session.id,
    ).group_by(Payment.method).all()
    by_method = {method: quantize(Decimal(str(total))) for method, total in rows}

    sales_count = db.session.query(func.count(Sale.id)).filter(
        Sale.register_session_id == session.id
    ).scalar() or 0

    cash_total = by_method.get(PaymentMethod.CASH.value, ZERO)
    expected = session.expected_cash if not session.is_open else quantize(session.opening_float + cash_total)

    return {
        "session": session.to_dict(),
        "sales_count": int(sales_count),
        "payments_by_method": {method: format(total, "f") for method, total in sorted(by_method.items())},
        "cash_total": format(cash_total, "f"),
        "expected_cash": format(quantize(expected), "f"),
        "is_closed": not session.is_open,
    }
