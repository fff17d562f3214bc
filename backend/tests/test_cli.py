# Overview: Pytest coverage for the Flask CLI command groups.

from retailpos.extensions import db
from retailpos.models import StockItem, Store, Tenant
from retailpos.services import stock_service


class TestSystemInit:
    def test_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "init"])
        assert first.exit_code == 0, first.output
        second = runner.invoke(args=["system", "init"])
        assert second.exit_code == 0, second.output
        assert "Using existing tenant" in second.output

        assert db.session.query(Tenant).count() == 1
        assert db.session.query(Store).count() == 1


class TestStockCommands:
    def test_show_and_low(self, app, db_session, actor, store_a, stock_up):
        stock_up(11, store_a.id, 2)
        stock_service.set_reorder_point(actor, variant_id=11, store_id=store_a.id, reorder_point=3)
        runner = app.test_cli_runner()

        shown = runner.invoke(args=["stock", "show", "--store-id", str(store_a.id)])
        assert shown.exit_code == 0
        assert "11" in shown.output

        low = runner.invoke(args=["stock", "low", "--store-id", str(store_a.id)])
        assert low.exit_code == 0
        assert "11" in low.output

    def test_verify_passes_for_ledgered_stock(self, app, db_session, actor, store_a, stock_up):
        stock_up(11, store_a.id, 5)
        stock_service.consume_stock(actor, variant_id=11, store_id=store_a.id, qty=2, sale_id=1)

        result = app.test_cli_runner().invoke(args=["stock", "verify"])
        assert result.exit_code == 0, result.output
        assert "PASS 1 stock row(s)" in result.output

    def test_verify_flags_unledgered_quantity(self, app, db_session, store_a):
        db_session.add(StockItem(
            variant_id=12, store_id=store_a.id,
            qty_on_hand=4, qty_reserved=0, qty_available=4, reorder_point=0,
        ))
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["stock", "verify"])
        assert result.exit_code == 1
        assert "ledger net 0" in result.output


class TestStoresCreate:
    def test_create_store(self, app, db_session, tenant_a):
        result = app.test_cli_runner().invoke(
            args=["stores", "create", "--tenant-id", str(tenant_a.id), "--name", "Outlet", "--code", "OUT"]
        )
        assert result.exit_code == 0, result.output
        assert db.session.query(Store).filter_by(code="OUT").count() == 1

    def test_unknown_tenant(self, app, db_session):
        result = app.test_cli_runner().invoke(
            args=["stores", "create", "--tenant-id", "999", "--name", "Ghost"]
        )
        assert result.exit_code != 0
