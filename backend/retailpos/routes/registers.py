# Overview: Flask API routes for register sessions; parses input and returns JSON responses.

# backend/retailpos/routes/registers.py
"""
Register Session API Routes

Shift lifecycle: open -> close (immutable once closed). At most one open
session per store; a second open is answered with 409.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..context import Action, Resource
from ..decorators import require_actor, require_permission
from ..errors import LedgerError
from ..extensions import db
from ..services import register_service


registers_bp = Blueprint("registers", __name__, url_prefix="/api/registers")


@registers_bp.post("/open")
@require_actor
@require_permission(Action.OPEN, Resource.REGISTER)
def open_register_route():
    """
    Open a register session.

    Request body:
    {
        "store_id": 1,
        "opening_float": "100.00"
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        session = register_service.open_register(
            g.actor,
            store_id=data["store_id"],
            opening_float=data["opening_float"],
        )
        return jsonify(session.to_dict()), 201
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e.args[0]}"}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to open register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/sessions/<int:session_id>/close")
@require_actor
@require_permission(Action.CLOSE, Resource.REGISTER)
def close_register_route(session_id: int):
    """
    Close a session and reconcile the drawer.

    Request body:
    {
        "actual_cash": "250.00",
        "notes": "..."  (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        session = register_service.close_register(
            g.actor,
            session_id=session_id,
            actual_cash=data["actual_cash"],
            notes=data.get("notes"),
        )
        return jsonify(session.to_dict()), 200
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e.args[0]}"}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to close register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/current")
@require_actor
@require_permission(Action.READ, Resource.REGISTER)
def current_session_route():
    store_id = request.args.get("store_id", type=int)
    if store_id is None:
        return jsonify({"error": "store_id is required"}), 400
    try:
        session = register_service.get_current_session(g.actor, store_id)
        return jsonify(session.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get current register session")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/sessions/<int:session_id>")
@require_actor
@require_permission(Action.READ, Resource.REGISTER)
def get_session_route(session_id: int):
    try:
        session = register_service.get_session(g.actor, session_id)
        return jsonify(session.to_dict()), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get register session")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/sessions/<int:session_id>/summary")
@require_actor
@require_permission(Action.READ, Resource.REGISTER)
def session_summary_route(session_id: int):
    """Sales count, payments per method and expected cash for one session."""
    try:
        return jsonify(register_service.get_session_summary(g.actor, session_id)), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build register session summary")
        return jsonify({"error": "Internal server error"}), 500
