from decimal import Decimal

from factory_mrp.db.models.inventory import Inventory
from factory_mrp.db.models.master import BOMItem
from factory_mrp.db.models.production import InventoryReservation
from factory_mrp.services.production_plans import lifecycle
from factory_mrp.services.production_plans.reservation_manager import validate_reservation_integrity
from tests.conftest import START


def _plan(db, product_code="P", qty=10):
    data = {"product_code": product_code, "planned_quantity": qty, "start_date": START.isoformat()}
    return lifecycle.create_plan(db, data, "tester")["plan"]["id"]


class TestIntegrityReport:
    def test_healthy_after_normal_operations(self, db):
        _plan(db)
        _plan(db, "Q", 2)
        started = _plan(db, "R", 1)
        lifecycle.start_production(db, started, "tester")
        report = validate_reservation_integrity(db)
        assert report["overall_status"] == "HEALTHY"
        assert report["orphaned_reservations"]["count"] == 0

    def test_terminal_plan_holding_reservations(self, db):
        plan_id = _plan(db)
        lifecycle.cancel_plan(db, plan_id, "tester")
        db.add(InventoryReservation(production_plan_id=plan_id, part_code="X", reserved_quantity=Decimal("5")))
        db.commit()

        report = validate_reservation_integrity(db)
        assert report["overall_status"] == "ISSUES_FOUND"
        assert report["status_mismatches"]["count"] == 1
        assert report["status_mismatches"]["mismatches"][0]["plan_id"] == plan_id

    def test_bom_changed_after_reservation(self, db):
        plan_id = _plan(db)
        line = db.query(BOMItem).filter(BOMItem.product_code == "P", BOMItem.part_code == "X").one()
        line.quantity = Decimal("3")
        db.commit()

        report = validate_reservation_integrity(db)
        assert report["bom_mismatches"]["count"] == 1
        mismatch = report["bom_mismatches"]["plans"][0]
        assert mismatch["plan_id"] == plan_id
        assert mismatch["expected"] == {"X": 30}
        assert mismatch["actual"] == {"X": 20}

    def test_reserved_stock_drift(self, db):
        _plan(db)
        db.get(Inventory, "Y").reserved_stock = Decimal("7")
        db.commit()

        report = validate_reservation_integrity(db)
        assert report["overall_status"] == "ISSUES_FOUND"
        assert [p["part_code"] for p in report["reserved_stock_drift"]["parts"]] == ["Y"]

    def test_update_repairs_bom_drift(self, db):
        plan_id = _plan(db)
        line = db.query(BOMItem).filter(BOMItem.product_code == "P", BOMItem.part_code == "X").one()
        line.quantity = Decimal("1")
        db.commit()

        lifecycle.update_plan(db, plan_id, {"product_code": "P", "planned_quantity": 10,
                                            "start_date": START.isoformat()}, "tester")
        assert validate_reservation_integrity(db)["overall_status"] == "HEALTHY"
