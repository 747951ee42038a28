from decimal import Decimal

from factory_mrp.db.models.inventory import Inventory
from factory_mrp.db.models.production import InventoryReservation, PlanStatus
from factory_mrp.services.bom.expander import expand
from factory_mrp.services.production_plans import lifecycle, reservation_manager
from tests.conftest import START


def _plan(db, product_code="Q", qty=4, status=None):
    data = {"product_code": product_code, "planned_quantity": qty, "start_date": START.isoformat()}
    if status:
        data["status"] = status
    return lifecycle.create_plan(db, data, "tester")["plan"]["id"]


def _rows(db, plan_id):
    return (db.query(InventoryReservation)
            .filter(InventoryReservation.production_plan_id == plan_id)
            .order_by(InventoryReservation.part_code)
            .all())


class TestCreateReservations:
    def test_one_row_per_part_matching_requirement(self, db):
        plan_id = _plan(db, "Q", 4)
        expected = {r.part_code: r.required_quantity for r in expand(db, "Q", 4)}
        assert {r.part_code: r.reserved_quantity for r in _rows(db, plan_id)} == expected

    def test_remarks_and_creator(self, db):
        plan_id = _plan(db, "Q", 4)
        row = _rows(db, plan_id)[0]
        assert row.remarks == f"生産計画ID:{plan_id} 製品:Q での自動予約"
        assert row.created_by == "tester"

    def test_reserved_stock_follows_reservations(self, db):
        _plan(db, "Q", 4)
        _plan(db, "Q", 1)
        assert db.get(Inventory, "A").reserved_stock == Decimal("5")
        assert db.get(Inventory, "B").reserved_stock == Decimal("15")

    def test_no_bom_creates_nothing(self, db):
        plan_id = _plan(db, "N", 3)
        assert _rows(db, plan_id) == []

    def test_cancelled_on_create_reserves_nothing(self, db):
        plan_id = _plan(db, "Q", 4, status=PlanStatus.CANCELLED)
        assert _rows(db, plan_id) == []


class TestDeleteReservations:
    def test_second_delete_is_a_noop(self, db):
        plan_id = _plan(db, "Q", 4)
        first = reservation_manager.delete_reservations(db, plan_id)
        db.commit()
        second = reservation_manager.delete_reservations(db, plan_id)
        assert first["deleted_count"] == 2
        assert {r["part_code"] for r in first["deleted_reservations"]} == {"A", "B"}
        assert second["deleted_count"] == 0
        assert second["deleted_reservations"] == []

    def test_releases_reserved_stock(self, db):
        plan_id = _plan(db, "Q", 4)
        reservation_manager.delete_reservations(db, plan_id)
        db.commit()
        assert db.get(Inventory, "B").reserved_stock == Decimal("0")


class TestUpdateReservations:
    def test_quantity_change_rebuilds_rows(self, db):
        plan_id = _plan(db, "Q", 4)
        out = reservation_manager.update_reservations(db, plan_id, "Q", 2, PlanStatus.PLANNED, "tester")
        db.commit()
        assert out["action"] == "update_with_new_reservations"
        assert out["deleted"]["deleted_count"] == 2
        assert len(out["created"]) == 2
        assert {r.part_code: r.reserved_quantity for r in _rows(db, plan_id)} == {
            "A": Decimal("2"),
            "B": Decimal("6"),
        }

    def test_product_change_switches_parts(self, db):
        plan_id = _plan(db, "Q", 4)
        reservation_manager.update_reservations(db, plan_id, "P", 4, PlanStatus.PLANNED, "tester")
        db.commit()
        assert [r.part_code for r in _rows(db, plan_id)] == ["X"]

    def test_terminal_status_only_deletes(self, db):
        plan_id = _plan(db, "Q", 4)
        out = reservation_manager.update_reservations(db, plan_id, "Q", 4, PlanStatus.CANCELLED, "tester")
        db.commit()
        assert out["action"] == "delete_only"
        assert out["created"] == []
        assert _rows(db, plan_id) == []


class TestReservationStatus:
    def test_summary(self, db):
        plan_id = _plan(db, "Q", 4)
        status = reservation_manager.get_reservation_status(db, plan_id)
        assert status["plan_id"] == plan_id
        assert status["summary"]["total_parts"] == 2
        assert status["summary"]["total_reserved_quantity"] == 16
        first = status["reservations"][0]
        assert first["part_code"] == "A"
        assert first["supplier"] == "板金工業"
        assert first["current_stock"] == 100
