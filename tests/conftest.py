"""
Shared fixtures: in-memory SQLite seeded with a small factory, a session per
test, and a TestClient whose get_db points at that session.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from factory_mrp.core.security import Role, create_access_token
from factory_mrp.db.base import Base
from factory_mrp.db import models  # noqa: F401
from factory_mrp.db.models.inventory import Inventory
from factory_mrp.db.models.master import BOMItem, Part, Product, WorkStation
from factory_mrp.db.session import get_db, make_engine
from factory_mrp.main import app

START = date(2026, 11, 2)


def _seed(db):
    db.add_all([
        Part(part_code="X", part_name="六角ボルト", specification="M6x20", supplier="部品商事", lead_time_days=5),
        Part(part_code="Y", part_name="ワッシャー", specification="M6", supplier="部品商事", lead_time_days=3),
        Part(part_code="A", part_name="ブラケット", specification="SUS 2t", supplier="板金工業", lead_time_days=10),
        Part(part_code="B", part_name="ケーブル", specification="1m", supplier="電線商会", lead_time_days=7),
        Part(part_code="OBS", part_name="旧部品", specification="廃番", supplier="部品商事", is_active=False),
    ])
    db.add_all([
        WorkStation(station_code="ST1", process_group="sub1"),
        WorkStation(station_code="ST2", process_group="main1"),
        WorkStation(station_code="ST9", process_group="test1", is_active=False),
    ])
    db.add_all([
        Product(product_code="P"),
        Product(product_code="Q", remarks="2部品製品"),
        Product(product_code="R"),
        Product(product_code="N"),
        Product(product_code="OLD", is_active=False),
    ])
    db.flush()
    db.add_all([
        # P: X 2/unit
        BOMItem(product_code="P", station_code="ST1", part_code="X", quantity=Decimal("2")),
        # inactive rows never count
        BOMItem(product_code="P", station_code="ST9", part_code="Y", quantity=Decimal("5")),
        BOMItem(product_code="P", station_code="ST2", part_code="OBS", quantity=Decimal("1")),
        # Q: A 1/unit, B 3/unit
        BOMItem(product_code="Q", station_code="ST1", part_code="A", quantity=Decimal("1")),
        BOMItem(product_code="Q", station_code="ST2", part_code="B", quantity=Decimal("3")),
        # R: Y at two stations
        BOMItem(product_code="R", station_code="ST1", part_code="Y", quantity=Decimal("1")),
        BOMItem(product_code="R", station_code="ST2", part_code="Y", quantity=Decimal("2")),
        BOMItem(product_code="R", station_code="ST2", part_code="X", quantity=Decimal("1"), is_active=False),
    ])
    db.add_all([
        Inventory(part_code="X", current_stock=Decimal("25"), reserved_stock=Decimal("0")),
        Inventory(part_code="Y", current_stock=Decimal("100"), reserved_stock=Decimal("0")),
        Inventory(part_code="A", current_stock=Decimal("100"), reserved_stock=Decimal("0")),
        Inventory(part_code="B", current_stock=Decimal("5"), reserved_stock=Decimal("0")),
    ])
    db.commit()


@pytest.fixture()
def engine():
    eng = make_engine("sqlite+pysqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def db(engine):
    TestingSession = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    session = TestingSession()
    _seed(session)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(db):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _auth(role: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(f'u-{role}', f'{role}_user', role)}"}


@pytest.fixture()
def manager_headers():
    return _auth(Role.PRODUCTION_MANAGER)


@pytest.fixture()
def admin_headers():
    return _auth(Role.ADMIN)


@pytest.fixture()
def staff_headers():
    return _auth(Role.MATERIAL_STAFF)


@pytest.fixture()
def plan_payload():
    return {
        "building_no": "B1",
        "product_code": "P",
        "planned_quantity": 10,
        "start_date": START.isoformat(),
        "remarks": "テスト計画",
    }
