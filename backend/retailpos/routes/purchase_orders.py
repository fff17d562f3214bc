# Overview: Flask API routes for suppliers and purchase orders, including receipt into stock.

# backend/retailpos/routes/purchase_orders.py
"""
Purchase Order API Routes

Lifecycle: DRAFT -> SENT -> RECEIVED, or DRAFT/SENT -> CANCELLED.
A receipt batch is all-or-nothing; each received line posts a PURCHASE
stock move referenced "PO-{po_number}".
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..context import Action, Resource
from ..decorators import require_actor, require_permission
from ..errors import LedgerError
from ..extensions import db
from ..services import purchase_order_service


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")
suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


def _unexpected(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SUPPLIERS
# =============================================================================

@suppliers_bp.post("")
@require_actor
@require_permission(Action.CREATE, Resource.SUPPLIER)
def create_supplier_route():
    data = request.get_json(silent=True) or {}
    try:
        supplier = purchase_order_service.create_supplier(
            g.actor,
            name=data["name"],
            contact_name=data.get("contact_name"),
            email=data.get("email"),
            phone=data.get("phone"),
            address=data.get("address"),
            tax_id=data.get("tax_id"),
            notes=data.get("notes"),
        )
        return jsonify(supplier.to_dict()), 201
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e.args[0]}"}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to create supplier")


@suppliers_bp.get("")
@require_actor
@require_permission(Action.READ, Resource.SUPPLIER)
def list_suppliers_route():
    suppliers = purchase_order_service.list_suppliers(g.actor)
    return jsonify({"suppliers": [s.to_dict() for s in suppliers], "count": len(suppliers)}), 200


@suppliers_bp.put("/<int:supplier_id>")
@require_actor
@require_permission(Action.UPDATE, Resource.SUPPLIER)
def update_supplier_route(supplier_id: int):
    data = request.get_json(silent=True) or {}
    try:
        supplier = purchase_order_service.update_supplier(g.actor, supplier_id, data)
        return jsonify(supplier.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to update supplier")


@suppliers_bp.delete("/<int:supplier_id>")
@require_actor
@require_permission(Action.DELETE, Resource.SUPPLIER)
def delete_supplier_route(supplier_id: int):
    try:
        purchase_order_service.delete_supplier(g.actor, supplier_id)
        return jsonify({"success": True}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to delete supplier")


# =============================================================================
# PURCHASE ORDERS
# =============================================================================

@purchase_orders_bp.post("")
@require_actor
@require_permission(Action.CREATE, Resource.PURCHASE_ORDER)
def create_purchase_order_route():
    """
    Create a DRAFT purchase order.

    Request body:
    {
        "supplier_id": 1,
        "store_id": 1,
        "po_number": "PO-2024-001",
        "items": [{"variant_id": 1, "qty": 10, "cost": "4.50", "discount": "0"}],
        "shipping_cost": "5.00",  (optional)
        "tax_total": "0",  (optional)
        "expected_date": "2024-05-01T00:00:00Z",  (optional)
        "notes": "..."  (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        po = purchase_order_service.create_purchase_order(
            g.actor,
            supplier_id=data["supplier_id"],
            store_id=data["store_id"],
            po_number=data["po_number"],
            items=data["items"],
            shipping_cost=data.get("shipping_cost", "0"),
            tax_total=data.get("tax_total", "0"),
            expected_date=data.get("expected_date"),
            notes=data.get("notes"),
        )
        return jsonify(po.to_dict()), 201
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e.args[0]}"}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to create purchase order")


@purchase_orders_bp.get("")
@require_actor
@require_permission(Action.READ, Resource.PURCHASE_ORDER)
def list_purchase_orders_route():
    try:
        orders = purchase_order_service.list_purchase_orders(
            g.actor,
            status=request.args.get("status"),
            store_id=request.args.get("store_id", type=int),
        )
        return jsonify({
            "purchase_orders": [po.to_dict(include_items=False) for po in orders],
            "count": len(orders),
        }), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to list purchase orders")


@purchase_orders_bp.get("/<int:po_id>")
@require_actor
@require_permission(Action.READ, Resource.PURCHASE_ORDER)
def get_purchase_order_route(po_id: int):
    try:
        po = purchase_order_service.get_purchase_order(g.actor, po_id)
        return jsonify(po.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to get purchase order")


@purchase_orders_bp.post("/<int:po_id>/send")
@require_actor
@require_permission(Action.UPDATE, Resource.PURCHASE_ORDER)
def send_purchase_order_route(po_id: int):
    try:
        po = purchase_order_service.mark_purchase_order_sent(g.actor, po_id)
        return jsonify(po.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to send purchase order")


@purchase_orders_bp.post("/<int:po_id>/cancel")
@require_actor
@require_permission(Action.UPDATE, Resource.PURCHASE_ORDER)
def cancel_purchase_order_route(po_id: int):
    try:
        po = purchase_order_service.cancel_purchase_order(g.actor, po_id)
        return jsonify(po.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to cancel purchase order")


@purchase_orders_bp.post("/<int:po_id>/receive")
@require_actor
@require_permission(Action.RECEIVE, Resource.PURCHASE_ORDER)
def receive_purchase_order_route(po_id: int):
    """
    Receive a batch of lines into stock.

    Request body:
    {
        "items": [{"item_id": 12, "received_qty": 4}]
    }

    Returns:
        200: Updated purchase order (SENT when partial, RECEIVED when complete)
        400: Validation error or over-receipt
        404: Purchase order or item not found
        409: Purchase order cancelled or already received
    """
    data = request.get_json(silent=True) or {}
    try:
        po = purchase_order_service.receive_purchase_order(g.actor, po_id, data["items"])
        return jsonify(po.to_dict()), 200
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e.args[0]}"}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        return _unexpected("Failed to receive purchase order")
