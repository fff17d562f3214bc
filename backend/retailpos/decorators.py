# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .context import Action, ActorContext, Permission, Resource


def _int_header(name: str):
    raw = request.headers.get(name)
    if raw is None or not raw.strip().isdigit():
        return None
    return int(raw)


def require_actor(f):
    """
    Establish the calling actor from the trusted gateway headers.

    Authentication happens upstream. The gateway forwards:
    - X-Tenant-Id: tenant the actor belongs to (required)
    - X-User-Id: acting user (required)
    - X-Permissions: comma-separated "action:Resource" pairs (optional)

    Sets g.actor to an ActorContext. Returns 401 if the tenant or user
    header is missing or malformed; 400 on an unknown permission string.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant_id = _int_header("X-Tenant-Id")
        user_id = _int_header("X-User-Id")
        if tenant_id is None or user_id is None:
            return jsonify({"error": "Authentication required"}), 401

        raw_permissions = request.headers.get("X-Permissions", "")
        try:
            permissions = frozenset(
                Permission.parse(p) for p in raw_permissions.split(",") if p.strip()
            )
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        g.actor = ActorContext(tenant_id=tenant_id, user_id=user_id, permissions=permissions)
        return f(*args, **kwargs)

    return decorated_function


def require_permission(action: Action, resource: Resource):
    """
    Require a specific (action, resource) permission.

    Must be applied AFTER @require_actor.

    Returns 403 if the actor lacks the permission.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required"}), 401
            if not actor.can(action, resource):
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": str(Permission(action, resource)),
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator
