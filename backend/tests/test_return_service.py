# Overview: Pytest coverage for refunds (full/partial status, accumulation, stock restoration).

import pytest
from decimal import Decimal

from retailpos.extensions import db
from retailpos.errors import ConflictError, NotFoundError, ValidationError
from retailpos.models import Return, StockItem, StockMove, MoveReason, SaleStatus
from retailpos.services import return_service, sales_service


def _on_hand(variant_id, store_id):
    return db.session.query(StockItem).filter_by(variant_id=variant_id, store_id=store_id).one().qty_on_hand


@pytest.fixture
def sale(db_session, actor, store_a, open_session, stock_up):
    """Sale of 2 x variant 1 and 1 x variant 2, grand total 25.00, from on-hand 10/10."""
    stock_up(1, store_a.id, 10)
    stock_up(2, store_a.id, 10)
    return sales_service.create_sale(
        actor,
        store_id=store_a.id,
        register_session_id=open_session.id,
        items=[
            {"variant_id": 1, "qty": 2, "price": "10.00"},
            {"variant_id": 2, "qty": 1, "price": "5.00"},
        ],
        payments=[{"method": "CASH", "amount": "25.00"}],
    )


class TestRefundSale:
    def test_full_refund_restores_stock(self, db_session, actor, store_a, sale):
        assert _on_hand(1, store_a.id) == 8

        record = return_service.refund_sale(
            actor, sale_id=sale.id, reason="Defective", refund_method="CASH", refund_amount="25.00"
        )

        assert record.refund_amount == Decimal("25.00")
        assert record.processed_by_user_id == actor.user_id
        assert sales_service.get_sale(actor, sale.id).status == SaleStatus.REFUNDED.value
        assert _on_hand(1, store_a.id) == 10
        assert _on_hand(2, store_a.id) == 10

        returns = db.session.query(StockMove).filter_by(reason=MoveReason.RETURN.value).all()
        assert len(returns) == 2
        assert all(m.reference == f"SALE-{sale.id}" for m in returns)
        assert all(m.to_store_id == store_a.id for m in returns)

    def test_refund_within_tolerance_is_full(self, db_session, actor, sale):
        return_service.refund_sale(
            actor, sale_id=sale.id, reason="x", refund_method="CASH", refund_amount="24.99"
        )
        assert sales_service.get_sale(actor, sale.id).status == SaleStatus.REFUNDED.value

    def test_partial_refund_keeps_stock(self, db_session, actor, store_a, sale):
        return_service.refund_sale(
            actor, sale_id=sale.id, reason="Price match", refund_method="CARD", refund_amount="5.00"
        )

        assert sales_service.get_sale(actor, sale.id).status == SaleStatus.PARTIAL_REFUND.value
        assert _on_hand(1, store_a.id) == 8
        assert db.session.query(StockMove).filter_by(reason=MoveReason.RETURN.value).count() == 0

    def test_partial_refunds_accumulate_to_full(self, db_session, actor, store_a, sale):
        return_service.refund_sale(actor, sale_id=sale.id, reason="a", refund_method="CASH", refund_amount="10.00")
        return_service.refund_sale(actor, sale_id=sale.id, reason="b", refund_method="CASH", refund_amount="15.00")

        assert sales_service.get_sale(actor, sale.id).status == SaleStatus.REFUNDED.value
        assert _on_hand(1, store_a.id) == 10
        assert return_service.refunded_total(sale.id) == Decimal("25.00")
        assert [r.reason for r in return_service.list_returns(actor, sale.id)] == ["a", "b"]

    def test_refunding_refunded_sale_conflicts(self, db_session, actor, store_a, sale):
        return_service.refund_sale(actor, sale_id=sale.id, reason="x", refund_method="CASH", refund_amount="25.00")

        with pytest.raises(ConflictError):
            return_service.refund_sale(actor, sale_id=sale.id, reason="y", refund_method="CASH", refund_amount="1.00")

        assert db.session.query(Return).count() == 1
        assert _on_hand(1, store_a.id) == 10

    def test_refund_above_total_is_full(self, db_session, actor, store_a, sale):
        record = return_service.refund_sale(
            actor, sale_id=sale.id, reason="Goodwill", refund_method="CASH", refund_amount="25.02"
        )

        assert record.refund_amount == Decimal("25.02")
        assert sales_service.get_sale(actor, sale.id).status == SaleStatus.REFUNDED.value
        assert _on_hand(1, store_a.id) == 10
        assert _on_hand(2, store_a.id) == 10

    def test_partial_then_excess_completes_refund(self, db_session, actor, store_a, sale):
        return_service.refund_sale(actor, sale_id=sale.id, reason="a", refund_method="CASH", refund_amount="20.00")
        return_service.refund_sale(actor, sale_id=sale.id, reason="b", refund_method="CASH", refund_amount="9.00")

        assert sales_service.get_sale(actor, sale.id).status == SaleStatus.REFUNDED.value
        assert return_service.refunded_total(sale.id) == Decimal("29.00")
        assert _on_hand(1, store_a.id) == 10

    @pytest.mark.parametrize("kwargs", [
        {"reason": "", "refund_method": "CASH", "refund_amount": "1.00"},
        {"reason": "x", "refund_method": "GOLD", "refund_amount": "1.00"},
        {"reason": "x", "refund_method": "CASH", "refund_amount": "0"},
        {"reason": "x", "refund_method": "CASH", "refund_amount": 1.0},
    ])
    def test_invalid_input_rejected(self, db_session, actor, sale, kwargs):
        with pytest.raises(ValidationError):
            return_service.refund_sale(actor, sale_id=sale.id, **kwargs)
        assert db.session.query(Return).count() == 0

    def test_unknown_sale(self, db_session, actor):
        with pytest.raises(NotFoundError):
            return_service.refund_sale(actor, sale_id=999, reason="x", refund_method="CASH", refund_amount="1.00")

    def test_foreign_tenant_cannot_refund(self, db_session, actor_b, sale):
        with pytest.raises(NotFoundError):
            return_service.refund_sale(
                actor_b, sale_id=sale.id, reason="x", refund_method="CASH", refund_amount="1.00"
            )
        with pytest.raises(NotFoundError):
            return_service.list_returns(actor_b, sale.id)
