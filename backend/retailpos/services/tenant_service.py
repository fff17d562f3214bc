"""
Tenant scoping helpers.

Store ids arrive from callers; every engine operation validates them against
the tenant in its ActorContext before touching store-owned rows. Unknown and
foreign stores are reported identically (NotFoundError) so the existence of
another tenant's store is never revealed.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..errors import NotFoundError
from ..models import Store

logger = logging.getLogger(__name__)


def require_store_in_tenant(store_id: int, tenant_id: int) -> Store:
    """
    Validate that a store belongs to the specified tenant.

    Returns:
        The Store object if valid

    Raises:
        NotFoundError if the store doesn't exist or belongs to another tenant
    """
    store = db.session.query(Store).filter_by(id=store_id).first()
    if store is None or store.tenant_id != tenant_id:
        if store is not None:
            logger.warning(
                "Cross-tenant store access denied: store %s requested by tenant %s",
                store_id, tenant_id,
            )
        raise NotFoundError(f"Store {store_id} not found")
    return store


def get_tenant_store_ids(tenant_id: int) -> list[int]:
    rows = db.session.query(Store.id).filter_by(tenant_id=tenant_id).all()
    return [row.id for row in rows]
