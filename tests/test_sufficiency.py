from datetime import timedelta
from decimal import Decimal

import pytest

from factory_mrp.core.errors import InvalidStatusError, PlanNotFoundError
from factory_mrp.db.models.inventory import ReceiptStatus, ScheduledReceipt
from factory_mrp.services.production_plans import lifecycle
from factory_mrp.services.production_plans.sufficiency import calculate, calculate_shortage
from tests.conftest import START


def _plan(db, product_code, qty):
    data = {"product_code": product_code, "planned_quantity": qty, "start_date": START.isoformat()}
    return lifecycle.create_plan(db, data, "tester")["plan"]["id"]


def _receipt(db, order_no, part_code, qty, *, status=ReceiptStatus.AWAITING_REPLY,
             requested=START, scheduled=None, scheduled_qty=None):
    db.add(ScheduledReceipt(
        order_no=order_no,
        part_code=part_code,
        supplier="電線商会",
        order_quantity=Decimal(qty),
        scheduled_quantity=Decimal(scheduled_qty) if scheduled_qty is not None else None,
        order_date=START - timedelta(days=20),
        requested_date=requested,
        scheduled_date=scheduled,
        status=status,
    ))
    db.commit()


def _part(result, code):
    return next(r for r in result.requirements if r.part_code == code)


class TestShortageArithmetic:
    def test_reference_numbers(self):
        available, shortage = calculate_shortage(60, 50, 10, 5)
        assert available == Decimal("45")
        assert shortage == Decimal("15")

    def test_never_negative(self):
        assert calculate_shortage(10, 100, 0, 0) == (Decimal("100"), Decimal("0"))


class TestCalculate:
    def test_own_reservation_does_not_block_itself(self, db):
        """X: 25 on hand, plan needs 20 and holds 20 -> available 25, no shortage."""
        plan_id = _plan(db, "P", 10)
        x = _part(calculate(db, plan_id), "X")
        assert x.required_quantity == Decimal("20")
        assert x.current_stock == Decimal("25")
        assert x.total_reserved_stock == Decimal("20")
        assert x.plan_reserved_quantity == Decimal("20")
        assert x.available_stock == Decimal("25")
        assert x.shortage_quantity == Decimal("0")
        assert x.is_sufficient

    def test_other_plans_reduce_availability(self, db):
        first = _plan(db, "P", 10)
        _plan(db, "P", 10)
        x = _part(calculate(db, first), "X")
        assert x.total_reserved_stock == Decimal("40")
        assert x.available_stock == Decimal("5")
        assert x.shortage_quantity == Decimal("15")

    def test_summary(self, db):
        plan_id = _plan(db, "Q", 4)
        data = calculate(db, plan_id).to_dict()
        summary = data["shortage_summary"]
        assert summary["has_shortage"] is True
        assert summary["shortage_parts_count"] == 1
        assert summary["shortage_parts"][0]["part_code"] == "B"
        assert summary["shortage_parts"][0]["shortage_quantity"] == 7
        assert summary["total_shortage_amount"] == 7
        assert data["total_parts_count"] == 2
        assert data["sufficient_parts_count"] == 1
        assert data["bom_configured"] is True

    def test_procurement_due_date_is_start_minus_lead_time(self, db):
        plan_id = _plan(db, "P", 10)
        x = _part(calculate(db, plan_id), "X")
        assert x.procurement_due_date == START - timedelta(days=5)
        assert x.supplier == "部品商事"

    def test_repeated_bom_paths_give_one_entry(self, db):
        plan_id = _plan(db, "R", 10)
        result = calculate(db, plan_id)
        assert len(result.requirements) == 1
        y = result.requirements[0]
        assert y.required_quantity == Decimal("30")
        assert len(y.used_in_stations) == 2

    def test_no_bom_is_not_zero_shortage(self, db):
        plan_id = _plan(db, "N", 5)
        result = calculate(db, plan_id)
        assert result.bom_configured is False
        assert result.requirements == []
        data = result.to_dict()
        assert data["bom_configured"] is False
        assert data["shortage_summary"]["has_shortage"] is False

    def test_terminal_plan_rejected(self, db):
        plan_id = _plan(db, "P", 1)
        lifecycle.cancel_plan(db, plan_id, "tester")
        with pytest.raises(InvalidStatusError) as exc:
            calculate(db, plan_id)
        assert exc.value.code == "INVALID_STATUS_FOR_CALCULATION"

    def test_missing_plan(self, db):
        with pytest.raises(PlanNotFoundError):
            calculate(db, 999)


class TestScheduledReceipts:
    def test_outstanding_receipt_before_start_counts(self, db):
        """B: need 12, have 5; 10 incoming by start covers it."""
        plan_id = _plan(db, "Q", 4)
        _receipt(db, "PO-1", "B", 10)
        b = _part(calculate(db, plan_id), "B")
        assert b.scheduled_receipts_until_start == Decimal("10")
        assert b.available_stock == Decimal("15")
        assert b.shortage_quantity == Decimal("0")
        assert b.is_awaiting_receipt is True

    def test_scheduled_fields_override_order_fields(self, db):
        plan_id = _plan(db, "Q", 4)
        _receipt(db, "PO-2", "B", 10, status=ReceiptStatus.SCHEDULED,
                 requested=START + timedelta(days=30), scheduled=START - timedelta(days=1), scheduled_qty=4)
        b = _part(calculate(db, plan_id), "B")
        assert b.scheduled_receipts_until_start == Decimal("4")
        assert b.shortage_quantity == Decimal("3")

    def test_late_or_closed_receipts_ignored(self, db):
        plan_id = _plan(db, "Q", 4)
        _receipt(db, "PO-3", "B", 50, requested=START + timedelta(days=1))
        _receipt(db, "PO-4", "B", 50, status=ReceiptStatus.RECEIVED)
        _receipt(db, "PO-5", "B", 50, status=ReceiptStatus.CANCELLED)
        b = _part(calculate(db, plan_id), "B")
        assert b.scheduled_receipts_until_start == Decimal("0")
        assert b.shortage_quantity == Decimal("7")
        assert b.is_awaiting_receipt is False
