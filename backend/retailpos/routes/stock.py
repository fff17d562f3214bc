# Overview: Flask API routes for stock levels, stock movements and the stock ledger.

# backend/retailpos/routes/stock.py
"""
Stock API Routes

Thin adapter over services/stock_service.py. Every mutation runs in the
service's own unit of work; routes only parse input and map errors:
    ValidationError -> 400, NotFoundError -> 404,
    ConflictError / InsufficientStockError -> 409.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..context import Action, Resource
from ..decorators import require_actor, require_permission
from ..errors import LedgerError
from ..extensions import db
from ..services import stock_service


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _unexpected(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# READS
# =============================================================================

@stock_bp.get("/<int:store_id>")
@require_actor
@require_permission(Action.READ, Resource.INVENTORY)
def list_store_stock_route(store_id: int):
    try:
        items = stock_service.list_stock_by_store(g.actor, store_id)
        return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to list stock")


@stock_bp.get("/<int:store_id>/<int:variant_id>")
@require_actor
@require_permission(Action.READ, Resource.INVENTORY)
def get_stock_level_route(store_id: int, variant_id: int):
    try:
        item = stock_service.get_stock_level(g.actor, variant_id, store_id)
        return jsonify(item.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to get stock level")


@stock_bp.get("/<int:store_id>/low")
@require_actor
@require_permission(Action.READ, Resource.INVENTORY)
def low_stock_route(store_id: int):
    """
    Items at or below their reorder point.

    Query params:
        threshold: overrides every row's reorder point (optional)
    """
    threshold = request.args.get("threshold", type=int)
    try:
        items = stock_service.list_low_stock(g.actor, store_id, threshold=threshold)
        return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to list low stock")


@stock_bp.get("/moves")
@require_actor
@require_permission(Action.READ, Resource.INVENTORY)
def list_moves_route():
    """
    Stock ledger, newest first.

    Query params: variant_id, store_id, reason, reference, since (ISO-8601), limit
    """
    try:
        moves = stock_service.list_stock_moves(
            g.actor,
            variant_id=request.args.get("variant_id", type=int),
            store_id=request.args.get("store_id", type=int),
            reason=request.args.get("reason"),
            reference=request.args.get("reference"),
            since=request.args.get("since"),
            limit=request.args.get("limit", default=200, type=int),
        )
        return jsonify({"moves": [m.to_dict() for m in moves], "count": len(moves)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to list stock moves")


# =============================================================================
# MUTATIONS
# =============================================================================

@stock_bp.post("/adjust")
@require_actor
@require_permission(Action.ADJUST, Resource.INVENTORY)
def adjust_stock_route():
    """
    Apply a signed on-hand correction.

    Request body:
    {
        "variant_id": 1,
        "store_id": 1,
        "qty": -2,
        "reason": "Damaged",
        "notes": "Dropped on floor"  (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        item = stock_service.adjust_stock(
            g.actor,
            variant_id=data["variant_id"],
            store_id=data["store_id"],
            qty=data["qty"],
            reason=data["reason"],
            notes=data.get("notes"),
        )
        return jsonify(item.to_dict()), 200
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e.args[0]}"}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to adjust stock")


@stock_bp.post("/transfer")
@require_actor
@require_permission(Action.TRANSFER, Resource.INVENTORY)
def transfer_stock_route():
    """
    Move units between two stores of the caller's tenant.

    Request body:
    {
        "variant_id": 1,
        "from_store_id": 1,
        "to_store_id": 2,
        "qty": 4,
        "notes": "..."  (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        source, destination = stock_service.transfer_stock(
            g.actor,
            variant_id=data["variant_id"],
            from_store_id=data["from_store_id"],
            to_store_id=data["to_store_id"],
            qty=data["qty"],
            notes=data.get("notes"),
        )
        return jsonify({"from": source.to_dict(), "to": destination.to_dict()}), 200
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e.args[0]}"}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to transfer stock")


@stock_bp.post("/receive")
@require_actor
@require_permission(Action.RECEIVE, Resource.INVENTORY)
def receive_stock_route():
    """
    Book inbound units outside a purchase order.

    Request body:
    {
        "variant_id": 1,
        "store_id": 1,
        "qty": 10,
        "reason": "PURCHASE" | "RETURN"  (optional, default PURCHASE),
        "reference": "INV-123",  (optional)
        "notes": "..."  (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        item = stock_service.receive_stock(
            g.actor,
            variant_id=data["variant_id"],
            store_id=data["store_id"],
            qty=data["qty"],
            reason=data.get("reason", "PURCHASE"),
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return jsonify(item.to_dict()), 200
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e.args[0]}"}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to receive stock")


@stock_bp.put("/<int:store_id>/<int:variant_id>/reorder-point")
@require_actor
@require_permission(Action.UPDATE, Resource.INVENTORY)
def set_reorder_point_route(store_id: int, variant_id: int):
    data = request.get_json(silent=True) or {}
    try:
        item = stock_service.set_reorder_point(
            g.actor,
            variant_id=variant_id,
            store_id=store_id,
            reorder_point=data["reorder_point"],
        )
        return jsonify(item.to_dict()), 200
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e.args[0]}"}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to set reorder point")
