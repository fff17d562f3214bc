# Overview: Pytest coverage for suppliers, purchase orders and PO receipt into stock.

import pytest
from decimal import Decimal

from retailpos.extensions import db
from retailpos.errors import ConflictError, NotFoundError, ValidationError
from retailpos.models import PurchaseOrderStatus, StockItem, StockMove, MoveReason, Supplier
from retailpos.services import purchase_order_service as po_service


def _on_hand(variant_id, store_id):
    item = db.session.query(StockItem).filter_by(variant_id=variant_id, store_id=store_id).first()
    return item.qty_on_hand if item else 0


@pytest.fixture
def supplier(db_session, actor):
    return po_service.create_supplier(actor, name="Acme Wholesale", email="orders@acme.test")


@pytest.fixture
def po(db_session, actor, store_a, supplier):
    """PO for 10 x variant 1 @ 2.00 and 5 x variant 2 @ 3.00 (1.00 discount)."""
    return po_service.create_purchase_order(
        actor,
        supplier_id=supplier.id,
        store_id=store_a.id,
        po_number="2024-0001",
        items=[
            {"variant_id": 1, "qty": 10, "cost": "2.00"},
            {"variant_id": 2, "qty": 5, "cost": "3.00", "discount": "1.00"},
        ],
        shipping_cost="4.00",
        tax_total="1.50",
    )


def _item_ids(po):
    return [item.id for item in sorted(po.items, key=lambda i: i.id)]


class TestSuppliers:
    def test_create_and_list(self, db_session, actor, actor_b, supplier):
        assert [s.name for s in po_service.list_suppliers(actor)] == ["Acme Wholesale"]
        assert po_service.list_suppliers(actor_b) == []

    def test_name_required(self, db_session, actor):
        with pytest.raises(ValidationError):
            po_service.create_supplier(actor, name=" ")

    def test_invalid_email(self, db_session, actor):
        with pytest.raises(ValidationError):
            po_service.create_supplier(actor, name="X", email="not-an-email")

    def test_update_supplier(self, db_session, actor, supplier):
        updated = po_service.update_supplier(actor, supplier.id, {"name": " Acme Trade ", "phone": "555-0100"})

        assert updated.name == "Acme Trade"
        assert updated.phone == "555-0100"
        assert updated.email == "orders@acme.test"

    @pytest.mark.parametrize("changes", [{"name": ""}, {"email": "nope"}, {"tenant_id": 2}])
    def test_update_rejects_bad_fields(self, db_session, actor, supplier, changes):
        with pytest.raises(ValidationError):
            po_service.update_supplier(actor, supplier.id, changes)

    def test_update_foreign_supplier_not_found(self, db_session, actor_b, supplier):
        with pytest.raises(NotFoundError):
            po_service.update_supplier(actor_b, supplier.id, {"name": "Hijack"})
        assert db.session.get(Supplier, supplier.id).name == "Acme Wholesale"

    def test_delete_supplier(self, db_session, actor, supplier):
        po_service.delete_supplier(actor, supplier.id)
        assert po_service.list_suppliers(actor) == []

    def test_delete_scoped_to_tenant(self, db_session, actor, actor_b, supplier):
        with pytest.raises(NotFoundError):
            po_service.delete_supplier(actor_b, supplier.id)
        assert len(po_service.list_suppliers(actor)) == 1

    def test_delete_supplier_with_orders_conflicts(self, db_session, actor, supplier, po):
        with pytest.raises(ConflictError):
            po_service.delete_supplier(actor, supplier.id)
        assert len(po_service.list_suppliers(actor)) == 1


class TestCreatePurchaseOrder:
    def test_totals_and_draft_status(self, db_session, actor, po):
        assert po.status == PurchaseOrderStatus.DRAFT.value
        assert po.subtotal == Decimal("34.00")
        assert po.grand_total == Decimal("39.50")
        lines = sorted(po.items, key=lambda i: i.id)
        assert lines[1].line_total == Decimal("14.00")
        assert all(line.received_qty == 0 for line in lines)

    def test_duplicate_po_number_conflicts(self, db_session, actor, store_a, supplier, po):
        with pytest.raises(ConflictError):
            po_service.create_purchase_order(
                actor,
                supplier_id=supplier.id,
                store_id=store_a.id,
                po_number="2024-0001",
                items=[{"variant_id": 1, "qty": 1, "cost": "1.00"}],
            )

    def test_foreign_supplier_not_found(self, db_session, actor_b, store_b, supplier):
        with pytest.raises(NotFoundError):
            po_service.create_purchase_order(
                actor_b,
                supplier_id=supplier.id,
                store_id=store_b.id,
                po_number="PO-B1",
                items=[{"variant_id": 1, "qty": 1, "cost": "1.00"}],
            )

    def test_items_required(self, db_session, actor, store_a, supplier):
        with pytest.raises(ValidationError):
            po_service.create_purchase_order(
                actor, supplier_id=supplier.id, store_id=store_a.id, po_number="PO-X", items=[]
            )


class TestReceivePurchaseOrder:
    def test_full_receipt(self, db_session, actor, store_a, po):
        first, second = _item_ids(po)
        received = po_service.receive_purchase_order(actor, po.id, [
            {"item_id": first, "received_qty": 10},
            {"item_id": second, "received_qty": 5},
        ])

        assert received.status == PurchaseOrderStatus.RECEIVED.value
        assert received.received_date is not None
        assert _on_hand(1, store_a.id) == 10
        assert _on_hand(2, store_a.id) == 5

        moves = db.session.query(StockMove).filter_by(reason=MoveReason.PURCHASE.value).all()
        assert len(moves) == 2
        assert all(m.reference == "PO-2024-0001" for m in moves)

    def test_partial_receipt_then_completion(self, db_session, actor, store_a, po):
        first, second = _item_ids(po)

        partial = po_service.receive_purchase_order(actor, po.id, [{"item_id": first, "received_qty": 4}])
        assert partial.status == PurchaseOrderStatus.SENT.value
        assert partial.received_date is None
        assert _on_hand(1, store_a.id) == 4

        po_service.receive_purchase_order(actor, po.id, [{"item_id": first, "received_qty": 6}])
        assert po_service.get_purchase_order(actor, po.id).status == PurchaseOrderStatus.SENT.value

        done = po_service.receive_purchase_order(actor, po.id, [{"item_id": second, "received_qty": 5}])
        assert done.status == PurchaseOrderStatus.RECEIVED.value
        assert _on_hand(1, store_a.id) == 10

    def test_unknown_item_aborts_batch(self, db_session, actor, store_a, po):
        first, _ = _item_ids(po)
        with pytest.raises(NotFoundError) as exc:
            po_service.receive_purchase_order(actor, po.id, [
                {"item_id": first, "received_qty": 3},
                {"item_id": 99999, "received_qty": 1},
            ])

        assert "99999" in exc.value.message
        assert _on_hand(1, store_a.id) == 0
        refreshed = po_service.get_purchase_order(actor, po.id)
        assert refreshed.status == PurchaseOrderStatus.DRAFT.value
        assert all(item.received_qty == 0 for item in refreshed.items)

    def test_over_receipt_rejected(self, db_session, actor, store_a, po):
        first, _ = _item_ids(po)
        po_service.receive_purchase_order(actor, po.id, [{"item_id": first, "received_qty": 8}])

        with pytest.raises(ValidationError):
            po_service.receive_purchase_order(actor, po.id, [{"item_id": first, "received_qty": 3}])
        assert _on_hand(1, store_a.id) == 8

    def test_repeated_item_counts_toward_cap(self, db_session, actor, store_a, po):
        first, second = _item_ids(po)
        with pytest.raises(ValidationError):
            po_service.receive_purchase_order(actor, po.id, [
                {"item_id": second, "received_qty": 2},
                {"item_id": first, "received_qty": 6},
                {"item_id": first, "received_qty": 6},
            ])

        assert _on_hand(1, store_a.id) == 0
        assert _on_hand(2, store_a.id) == 0
        assert db.session.query(StockMove).count() == 0

    def test_received_po_conflicts(self, db_session, actor, po):
        first, second = _item_ids(po)
        po_service.receive_purchase_order(actor, po.id, [
            {"item_id": first, "received_qty": 10},
            {"item_id": second, "received_qty": 5},
        ])
        with pytest.raises(ConflictError):
            po_service.receive_purchase_order(actor, po.id, [{"item_id": first, "received_qty": 1}])

    def test_cancelled_po_conflicts(self, db_session, actor, po):
        po_service.cancel_purchase_order(actor, po.id)
        first, _ = _item_ids(po)
        with pytest.raises(ConflictError):
            po_service.receive_purchase_order(actor, po.id, [{"item_id": first, "received_qty": 1}])

    def test_invalid_received_qty(self, db_session, actor, po):
        first, _ = _item_ids(po)
        with pytest.raises(ValidationError):
            po_service.receive_purchase_order(actor, po.id, [{"item_id": first, "received_qty": 0}])


class TestLifecycle:
    def test_send_then_cancel(self, db_session, actor, po):
        sent = po_service.mark_purchase_order_sent(actor, po.id)
        assert sent.status == PurchaseOrderStatus.SENT.value
        with pytest.raises(ConflictError):
            po_service.mark_purchase_order_sent(actor, po.id)

        cancelled = po_service.cancel_purchase_order(actor, po.id)
        assert cancelled.status == PurchaseOrderStatus.CANCELLED.value

    def test_cannot_cancel_after_receipt(self, db_session, actor, po):
        first, _ = _item_ids(po)
        po_service.receive_purchase_order(actor, po.id, [{"item_id": first, "received_qty": 1}])
        with pytest.raises(ConflictError):
            po_service.cancel_purchase_order(actor, po.id)

    def test_list_filters_by_status(self, db_session, actor, actor_b, po):
        assert [p.id for p in po_service.list_purchase_orders(actor, status="DRAFT")] == [po.id]
        assert po_service.list_purchase_orders(actor, status="SENT") == []
        assert po_service.list_purchase_orders(actor_b) == []
        with pytest.raises(NotFoundError):
            po_service.get_purchase_order(actor_b, po.id)
