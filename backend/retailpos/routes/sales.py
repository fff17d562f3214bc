# Overview: Flask API routes for sale settlement and refunds; parses input and returns JSON responses.

# backend/retailpos/routes/sales.py
"""
Sales API Routes

POST /api/sales settles a sale in one unit of work: lines, payments and
stock consumption commit together or not at all. Money fields travel as
decimal strings ("12.50"); floats are rejected with 400.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..context import Action, Resource
from ..decorators import require_actor, require_permission
from ..errors import LedgerError
from ..extensions import db
from ..services import sales_service, return_service


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_actor
@require_permission(Action.CREATE, Resource.SALE)
def create_sale_route():
    """
    Settle a sale.

    Request body:
    {
        "store_id": 1,
        "register_session_id": 3,
        "items": [{"variant_id": 1, "qty": 2, "price": "10.00", "discount": "0", "tax": "0.70"}],
        "payments": [{"method": "CASH", "amount": "20.70"}],
        "customer_id": 9,  (optional)
        "notes": "..."  (optional)
    }

    Returns:
        201: Sale with lines and payments
        400: Validation error or payment mismatch
        404: Store or register session not found
        409: Register closed, or insufficient stock
    """
    data = request.get_json(silent=True) or {}
    try:
        sale = sales_service.create_sale(
            g.actor,
            store_id=data["store_id"],
            register_session_id=data["register_session_id"],
            items=data["items"],
            payments=data["payments"],
            customer_id=data.get("customer_id"),
            notes=data.get("notes"),
        )
        return jsonify(sale.to_dict()), 201
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e.args[0]}"}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_actor
@require_permission(Action.READ, Resource.SALE)
def list_sales_route():
    """
    List sales in the caller's tenant, newest first.

    Query params: store_id, customer_id, register_session_id, status,
    date_from, date_to (ISO-8601, inclusive), limit
    """
    try:
        sales = sales_service.list_sales(
            g.actor,
            store_id=request.args.get("store_id", type=int),
            customer_id=request.args.get("customer_id", type=int),
            register_session_id=request.args.get("register_session_id", type=int),
            status=request.args.get("status"),
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            limit=request.args.get("limit", default=100, type=int),
        )
        return jsonify({
            "sales": [s.to_dict(include_lines=False) for s in sales],
            "count": len(sales),
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_actor
@require_permission(Action.READ, Resource.SALE)
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(g.actor, sale_id)
        return jsonify(sale.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# REFUNDS
# =============================================================================

@sales_bp.post("/<int:sale_id>/refunds")
@require_actor
@require_permission(Action.REFUND, Resource.SALE)
def refund_sale_route(sale_id: int):
    """
    Refund a sale in full or in part.

    Request body:
    {
        "reason": "Customer changed mind",
        "refund_method": "CASH",
        "refund_amount": "20.70",
        "notes": "..."  (optional)
    }

    Returns:
        201: Return record plus the sale's new status
        400: Validation error or refund above the sale total
        404: Sale not found
        409: Sale already fully refunded
    """
    data = request.get_json(silent=True) or {}
    try:
        record = return_service.refund_sale(
            g.actor,
            sale_id=sale_id,
            reason=data["reason"],
            refund_method=data["refund_method"],
            refund_amount=data["refund_amount"],
            notes=data.get("notes"),
        )
        sale = sales_service.get_sale(g.actor, sale_id)
        return jsonify({"return": record.to_dict(), "sale_status": sale.status}), 201
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e.args[0]}"}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to refund sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/returns")
@require_actor
@require_permission(Action.READ, Resource.SALE)
def list_returns_route(sale_id: int):
    try:
        records = return_service.list_returns(g.actor, sale_id)
        return jsonify({"returns": [r.to_dict() for r in records], "count": len(records)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return jsonify({"error": "Internal server error"}), 500
