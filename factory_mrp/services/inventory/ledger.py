from __future__ import annotations
import logging
from decimal import Decimal
from typing import Iterable
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from factory_mrp.db.models.inventory import Inventory, InventoryTransaction, TransactionType
from factory_mrp.db.models.production import InventoryReservation
from factory_mrp.services._quantities import dec, ZERO

logger = logging.getLogger(__name__)


def _select(db: Session, part_code: str, lock: bool):
    q = db.query(Inventory).filter(Inventory.part_code == part_code)
    if lock:
        q = q.with_for_update()
    return q.first()


def _get_or_create(db: Session, part_code: str, *, lock: bool) -> Inventory:
    inv = _select(db, part_code, lock)
    if inv:
        return inv

    # FOR UPDATE matches nothing when the row is missing, so two writers can
    # both insert. The loser rolls back its savepoint and reads the winner's row.
    savepoint = db.begin_nested()
    try:
        inv = Inventory(part_code=part_code, current_stock=ZERO, reserved_stock=ZERO, safety_stock=0)
        db.add(inv)
        db.flush()
        savepoint.commit()
        return inv
    except IntegrityError:
        savepoint.rollback()
        logger.info("inventory row for %s created concurrently, re-reading", part_code)
        return db.query(Inventory).filter(Inventory.part_code == part_code).with_for_update().one()


def lock_parts(db: Session, part_codes: Iterable[str]) -> dict[str, Inventory]:
    """Row-lock the inventory rows of the given parts, in part_code order."""
    return {code: _get_or_create(db, code, lock=True) for code in sorted(set(part_codes))}


def stock_levels(db: Session, part_codes: Iterable[str]) -> dict[str, Decimal]:
    codes = list(set(part_codes))
    if not codes:
        return {}
    rows = db.query(Inventory.part_code, Inventory.current_stock).filter(Inventory.part_code.in_(codes)).all()
    levels = {code: ZERO for code in codes}
    for code, stock in rows:
        levels[code] = dec(stock)
    return levels


def issue_stock(
    db: Session,
    *,
    part_code: str,
    qty: Decimal,
    reference_id: int | None,
    reference_type: str | None,
    actor: str,
    remarks: str | None = None,
) -> InventoryTransaction:
    """Read-modify-write one part's stock under a row lock and record the issue."""
    inv = _get_or_create(db, part_code, lock=True)
    before = dec(inv.current_stock)
    after = before - dec(qty)
    if after < 0:
        logger.warning("stock for %s goes negative (%s -> %s)", part_code, before, after)
    inv.current_stock = after

    txn = InventoryTransaction(
        part_code=part_code,
        transaction_type=TransactionType.ISSUE,
        quantity=-dec(qty),
        before_stock=before,
        after_stock=after,
        reference_id=reference_id,
        reference_type=reference_type,
        remarks=remarks,
        created_by=actor,
    )
    db.add(txn)
    db.flush()
    return txn


def refresh_reserved_stock(db: Session, part_codes: Iterable[str]) -> None:
    """Recompute inventory.reserved_stock from the reservation rows."""
    codes = sorted(set(part_codes))
    if not codes:
        return
    db.flush()
    totals = dict(
        db.query(InventoryReservation.part_code, func.sum(InventoryReservation.reserved_quantity))
        .filter(InventoryReservation.part_code.in_(codes))
        .group_by(InventoryReservation.part_code)
        .all()
    )
    for code in codes:
        inv = _get_or_create(db, code, lock=True)
        inv.reserved_stock = dec(totals.get(code))
    db.flush()
