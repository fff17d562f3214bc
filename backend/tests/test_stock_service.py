# Overview: Pytest coverage for the stock mutation engine and stock move ledger.

"""
Stock Engine Tests

Every mutation must leave qty_available == qty_on_hand - qty_reserved and
write exactly one StockMove, inside one unit of work.
"""

import pytest
from retailpos.extensions import db
from retailpos.errors import InsufficientStockError, NotFoundError, ValidationError
from retailpos.models import StockItem, StockMove, MoveReason
from retailpos.services import stock_service
from retailpos.services.concurrency import unit_of_work
from retailpos.services.ledger_service import net_moved_qty


VARIANT = 501


def _item(variant_id, store_id):
    return db.session.query(StockItem).filter_by(variant_id=variant_id, store_id=store_id).one()


def _moves(**filters):
    return db.session.query(StockMove).filter_by(**filters).order_by(StockMove.id).all()


class TestAdjustStock:
    def test_adjust_creates_row_and_move(self, db_session, actor, store_a):
        item = stock_service.adjust_stock(
            actor, variant_id=VARIANT, store_id=store_a.id, qty=7, reason="Found in back room"
        )

        assert item.qty_on_hand == 7
        assert item.qty_available == 7
        assert item.qty_reserved == 0

        moves = _moves(variant_id=VARIANT)
        assert len(moves) == 1
        assert moves[0].reason == MoveReason.ADJUSTMENT.value
        assert moves[0].qty == 7
        assert moves[0].to_store_id == store_a.id
        assert moves[0].from_store_id is None
        assert moves[0].performed_by_user_id == actor.user_id
        assert moves[0].notes == "Found in back room"

    def test_negative_adjust_records_outbound_move(self, db_session, actor, store_a, stock_up):
        stock_up(VARIANT, store_a.id, 10)
        stock_service.adjust_stock(
            actor, variant_id=VARIANT, store_id=store_a.id, qty=-3, reason="Damaged", notes="Dropped"
        )

        item = _item(VARIANT, store_a.id)
        assert item.qty_on_hand == 7
        move = _moves(reason=MoveReason.ADJUSTMENT.value)[0]
        assert move.qty == 3
        assert move.from_store_id == store_a.id
        assert move.to_store_id is None
        assert move.notes == "Damaged: Dropped"

    def test_adjust_may_go_negative(self, db_session, actor, store_a):
        """Adjustments are corrections; no floor at zero."""
        item = stock_service.adjust_stock(
            actor, variant_id=VARIANT, store_id=store_a.id, qty=-4, reason="Shrinkage"
        )
        assert item.qty_on_hand == -4
        assert item.qty_available == -4

    def test_adjust_twice_applies_twice(self, db_session, actor, store_a):
        for _ in range(2):
            stock_service.adjust_stock(
                actor, variant_id=VARIANT, store_id=store_a.id, qty=5, reason="Recount"
            )
        assert _item(VARIANT, store_a.id).qty_on_hand == 10
        assert len(_moves(variant_id=VARIANT)) == 2

    def test_zero_qty_rejected(self, db_session, actor, store_a):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(actor, variant_id=VARIANT, store_id=store_a.id, qty=0, reason="x")
        assert db.session.query(StockItem).count() == 0

    def test_blank_reason_rejected(self, db_session, actor, store_a):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(actor, variant_id=VARIANT, store_id=store_a.id, qty=1, reason="  ")

    def test_foreign_store_not_found(self, db_session, actor, store_b):
        with pytest.raises(NotFoundError):
            stock_service.adjust_stock(actor, variant_id=VARIANT, store_id=store_b.id, qty=1, reason="x")
        assert db.session.query(StockItem).count() == 0


class TestTransferStock:
    def test_transfer_conserves_quantity(self, db_session, actor, store_a, store_a2, stock_up):
        stock_up(VARIANT, store_a.id, 10)

        source, destination = stock_service.transfer_stock(
            actor, variant_id=VARIANT, from_store_id=store_a.id, to_store_id=store_a2.id, qty=4
        )

        assert source.qty_on_hand == 6
        assert destination.qty_on_hand == 4
        assert source.qty_on_hand + destination.qty_on_hand == 10

        transfers = _moves(reason=MoveReason.TRANSFER.value)
        assert len(transfers) == 1
        assert transfers[0].from_store_id == store_a.id
        assert transfers[0].to_store_id == store_a2.id
        assert transfers[0].qty == 4

    def test_transfer_from_higher_store_id(self, db_session, actor, store_a, store_a2, stock_up):
        stock_up(VARIANT, store_a2.id, 3)
        stock_service.transfer_stock(
            actor, variant_id=VARIANT, from_store_id=store_a2.id, to_store_id=store_a.id, qty=3
        )
        assert _item(VARIANT, store_a2.id).qty_on_hand == 0
        assert _item(VARIANT, store_a.id).qty_on_hand == 3

    def test_insufficient_source_changes_nothing(self, db_session, actor, store_a, store_a2, stock_up):
        stock_up(VARIANT, store_a.id, 2)
        moves_before = db.session.query(StockMove).count()

        with pytest.raises(InsufficientStockError) as exc:
            stock_service.transfer_stock(
                actor, variant_id=VARIANT, from_store_id=store_a.id, to_store_id=store_a2.id, qty=5
            )

        assert exc.value.variant_id == VARIANT
        assert exc.value.store_id == store_a.id
        assert _item(VARIANT, store_a.id).qty_on_hand == 2
        assert db.session.query(StockItem).filter_by(store_id=store_a2.id).count() == 0
        assert db.session.query(StockMove).count() == moves_before

    def test_missing_source_row_is_insufficient(self, db_session, actor, store_a, store_a2):
        with pytest.raises(InsufficientStockError):
            stock_service.transfer_stock(
                actor, variant_id=VARIANT, from_store_id=store_a.id, to_store_id=store_a2.id, qty=1
            )

    def test_same_store_rejected(self, db_session, actor, store_a):
        with pytest.raises(ValidationError):
            stock_service.transfer_stock(
                actor, variant_id=VARIANT, from_store_id=store_a.id, to_store_id=store_a.id, qty=1
            )

    def test_cross_tenant_destination_rejected(self, db_session, actor, store_a, store_b, stock_up):
        stock_up(VARIANT, store_a.id, 5)
        with pytest.raises(NotFoundError):
            stock_service.transfer_stock(
                actor, variant_id=VARIANT, from_store_id=store_a.id, to_store_id=store_b.id, qty=1
            )
        assert _item(VARIANT, store_a.id).qty_on_hand == 5


class TestReceiveAndConsume:
    def test_receive_records_purchase_move(self, db_session, actor, store_a):
        item = stock_service.receive_stock(
            actor, variant_id=VARIANT, store_id=store_a.id, qty=12, reference="INV-9"
        )
        assert item.qty_on_hand == 12
        move = _moves(variant_id=VARIANT)[0]
        assert move.reason == MoveReason.PURCHASE.value
        assert move.reference == "INV-9"
        assert move.to_store_id == store_a.id

    def test_receive_rejects_outbound_reason(self, db_session, actor, store_a):
        with pytest.raises(ValidationError):
            stock_service.receive_stock(
                actor, variant_id=VARIANT, store_id=store_a.id, qty=1, reason=MoveReason.SALE
            )

    def test_receive_rejects_non_positive_qty(self, db_session, actor, store_a):
        with pytest.raises(ValidationError):
            stock_service.receive_stock(actor, variant_id=VARIANT, store_id=store_a.id, qty=0)

    def test_consume_until_insufficient(self, db_session, actor, store_a, stock_up):
        """On-hand 5: consume 3 succeeds, a second 3 fails and leaves 2."""
        stock_up(VARIANT, store_a.id, 5)

        item = stock_service.consume_stock(actor, variant_id=VARIANT, store_id=store_a.id, qty=3, sale_id=1)
        assert item.qty_on_hand == 2

        with pytest.raises(InsufficientStockError) as exc:
            stock_service.consume_stock(actor, variant_id=VARIANT, store_id=store_a.id, qty=3, sale_id=2)
        assert exc.value.on_hand == 2
        assert exc.value.requested == 3

        assert _item(VARIANT, store_a.id).qty_on_hand == 2
        sale_moves = _moves(reason=MoveReason.SALE.value)
        assert len(sale_moves) == 1
        assert sale_moves[0].reference == "SALE-1"
        assert sale_moves[0].from_store_id == store_a.id

    def test_consume_missing_row_is_insufficient(self, db_session, actor, store_a):
        with pytest.raises(InsufficientStockError):
            stock_service.consume_stock(actor, variant_id=VARIANT, store_id=store_a.id, qty=1, sale_id=1)
        assert db.session.query(StockItem).count() == 0

    def test_consume_exact_on_hand_reaches_zero(self, db_session, actor, store_a, stock_up):
        stock_up(VARIANT, store_a.id, 4)
        item = stock_service.consume_stock(actor, variant_id=VARIANT, store_id=store_a.id, qty=4, sale_id=1)
        assert item.qty_on_hand == 0
        assert item.qty_available == 0

    def test_restore_records_return_move(self, db_session, actor, store_a):
        stock_service.restore_stock(actor, variant_id=VARIANT, store_id=store_a.id, qty=2, reference="SALE-7")
        move = _moves(variant_id=VARIANT)[0]
        assert move.reason == MoveReason.RETURN.value
        assert move.reference == "SALE-7"


class TestStockItemStore:
    def test_get_or_create_is_idempotent(self, db_session, store_a):
        with unit_of_work():
            first = stock_service.get_or_create_stock_item(VARIANT, store_a.id)
            second = stock_service.get_or_create_stock_item(VARIANT, store_a.id)
        assert first.id == second.id
        assert db.session.query(StockItem).count() == 1

    def test_stock_level_not_found(self, db_session, actor, store_a):
        with pytest.raises(NotFoundError):
            stock_service.get_stock_level(actor, VARIANT, store_a.id)

    def test_stock_level_hides_foreign_store(self, db_session, actor, actor_b, store_b):
        stock_service.receive_stock(actor_b, variant_id=VARIANT, store_id=store_b.id, qty=3)
        with pytest.raises(NotFoundError):
            stock_service.get_stock_level(actor, VARIANT, store_b.id)

    def test_low_stock_uses_reorder_point(self, db_session, actor, store_a, stock_up):
        stock_up(1, store_a.id, 2)
        stock_up(2, store_a.id, 20)
        stock_service.set_reorder_point(actor, variant_id=1, store_id=store_a.id, reorder_point=5)
        stock_service.set_reorder_point(actor, variant_id=2, store_id=store_a.id, reorder_point=5)

        low = stock_service.list_low_stock(actor, store_a.id)
        assert [i.variant_id for i in low] == [1]

        low = stock_service.list_low_stock(actor, store_a.id, threshold=25)
        assert sorted(i.variant_id for i in low) == [1, 2]

    def test_reorder_point_must_not_be_negative(self, db_session, actor, store_a):
        with pytest.raises(ValidationError):
            stock_service.set_reorder_point(actor, variant_id=1, store_id=store_a.id, reorder_point=-1)

    def test_list_moves_filters(self, db_session, actor, store_a, store_a2, stock_up):
        stock_up(VARIANT, store_a.id, 10)
        stock_service.transfer_stock(
            actor, variant_id=VARIANT, from_store_id=store_a.id, to_store_id=store_a2.id, qty=1
        )

        all_moves = stock_service.list_stock_moves(actor, variant_id=VARIANT)
        assert [m.reason for m in all_moves] == ["TRANSFER", "PURCHASE"]

        transfers = stock_service.list_stock_moves(actor, reason="TRANSFER")
        assert len(transfers) == 1

        at_a2 = stock_service.list_stock_moves(actor, store_id=store_a2.id)
        assert len(at_a2) == 1

        with pytest.raises(ValidationError):
            stock_service.list_stock_moves(actor, reason="THEFT")

    def test_moves_scoped_to_tenant(self, db_session, actor, actor_b, store_a, store_b):
        stock_service.receive_stock(actor_b, variant_id=VARIANT, store_id=store_b.id, qty=3)
        assert stock_service.list_stock_moves(actor) == []


class TestInvariants:
    def test_invariant_holds_after_every_operation(self, db_session, actor, store_a, store_a2, stock_up):
        stock_up(VARIANT, store_a.id, 10)
        stock_service.adjust_stock(actor, variant_id=VARIANT, store_id=store_a.id, qty=-1, reason="x")
        stock_service.transfer_stock(
            actor, variant_id=VARIANT, from_store_id=store_a.id, to_store_id=store_a2.id, qty=3
        )
        stock_service.consume_stock(actor, variant_id=VARIANT, store_id=store_a2.id, qty=2, sale_id=1)
        stock_service.restore_stock(actor, variant_id=VARIANT, store_id=store_a2.id, qty=1)

        for item in db.session.query(StockItem).all():
            assert item.is_consistent
            assert item.qty_on_hand == net_moved_qty(item.variant_id, item.store_id)
        assert stock_service.find_inconsistent_stock_items() == []

        assert _item(VARIANT, store_a.id).qty_on_hand == 6
        assert _item(VARIANT, store_a2.id).qty_on_hand == 2

    def test_failed_unit_rolls_back_earlier_writes(self, db_session, actor, store_a):
        """An error after a nested mutation discards that mutation and its move."""
        with pytest.raises(InsufficientStockError):
            with unit_of_work():
                stock_service.adjust_stock(actor, variant_id=VARIANT, store_id=store_a.id, qty=5, reason="x")
                stock_service.consume_stock(actor, variant_id=VARIANT, store_id=store_a.id, qty=9, sale_id=1)

        assert db.session.query(StockItem).count() == 0
        assert db.session.query(StockMove).count() == 0

    def test_inconsistent_row_is_detected(self, db_session, store_a):
        db_session.add(StockItem(
            variant_id=VARIANT, store_id=store_a.id,
            qty_on_hand=5, qty_reserved=1, qty_available=5, reorder_point=0,
        ))
        db_session.commit()
        bad = stock_service.find_inconsistent_stock_items()
        assert len(bad) == 1
        assert not bad[0].is_consistent
