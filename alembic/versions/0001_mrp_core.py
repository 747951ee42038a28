"""mrp core: master data, inventory ledger, production plans, reservations

Revision ID: 0001_mrp_core
Revises:
Create Date: 2026-10-18T09:00:00Z
"""
from alembic import op
import sqlalchemy as sa

revision = "0001_mrp_core"
down_revision = None
branch_labels = None
depends_on = None

QTY = sa.Numeric(18, 6)


def _timestamps(updated: bool = True):
    cols = [sa.Column("created_at", sa.DateTime(), nullable=False)]
    if updated:
        cols.append(sa.Column("updated_at", sa.DateTime(), nullable=False))
    return cols


def upgrade():
    op.create_table(
        "parts",
        sa.Column("part_code", sa.String(length=30), primary_key=True),
        sa.Column("part_name", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("specification", sa.String(length=200), nullable=True),
        sa.Column("unit", sa.String(length=10), nullable=False, server_default="個"),
        sa.Column("category", sa.String(length=50), nullable=True),
        sa.Column("supplier", sa.String(length=100), nullable=True),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("lead_time_days", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("safety_stock", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_parts_category", "parts", ["category"])
    op.create_index("ix_parts_supplier", "parts", ["supplier"])
    op.create_index("ix_parts_is_active", "parts", ["is_active"])

    op.create_table(
        "products",
        sa.Column("product_code", sa.String(length=20), primary_key=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_products_is_active", "products", ["is_active"])

    op.create_table(
        "work_stations",
        sa.Column("station_code", sa.String(length=20), primary_key=True),
        sa.Column("process_group", sa.String(length=10), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_work_stations_process_group", "work_stations", ["process_group"])
    op.create_index("ix_work_stations_is_active", "work_stations", ["is_active"])

    op.create_table(
        "bom_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("product_code", sa.String(length=20),
                  sa.ForeignKey("products.product_code", ondelete="CASCADE"), nullable=False),
        sa.Column("station_code", sa.String(length=20),
                  sa.ForeignKey("work_stations.station_code", ondelete="CASCADE"), nullable=False),
        sa.Column("part_code", sa.String(length=30),
                  sa.ForeignKey("parts.part_code", ondelete="CASCADE"), nullable=False),
        sa.Column("quantity", QTY, nullable=False, server_default="1"),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint("product_code", "station_code", "part_code", name="uk_product_station_part"),
    )
    op.create_index("ix_bom_items_product_code", "bom_items", ["product_code"])
    op.create_index("ix_bom_items_station_code", "bom_items", ["station_code"])
    op.create_index("ix_bom_items_part_code", "bom_items", ["part_code"])
    op.create_index("ix_bom_items_is_active", "bom_items", ["is_active"])
    op.create_index("ix_bom_items_product_active", "bom_items", ["product_code", "is_active"])

    op.create_table(
        "inventory",
        sa.Column("part_code", sa.String(length=30), sa.ForeignKey("parts.part_code"), primary_key=True),
        sa.Column("current_stock", QTY, nullable=False, server_default="0"),
        sa.Column("reserved_stock", QTY, nullable=False, server_default="0"),
        sa.Column("safety_stock", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("part_code", sa.String(length=30), sa.ForeignKey("parts.part_code"), nullable=False),
        sa.Column("transaction_type", sa.String(length=16), nullable=False),
        sa.Column("quantity", QTY, nullable=False),
        sa.Column("before_stock", QTY, nullable=False),
        sa.Column("after_stock", QTY, nullable=False),
        sa.Column("reference_id", sa.Integer(), nullable=True),
        sa.Column("reference_type", sa.String(length=50), nullable=True),
        sa.Column("transaction_date", sa.DateTime(), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=50), nullable=False, server_default="system"),
        *_timestamps(updated=False),
    )
    op.create_index("ix_inventory_transactions_transaction_type", "inventory_transactions", ["transaction_type"])
    op.create_index("ix_inv_txn_part_date", "inventory_transactions", ["part_code", "transaction_date"])
    op.create_index("ix_inv_txn_reference", "inventory_transactions", ["reference_type", "reference_id"])

    op.create_table(
        "scheduled_receipts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_no", sa.String(length=20), nullable=False, unique=True),
        sa.Column("part_code", sa.String(length=30), sa.ForeignKey("parts.part_code"), nullable=False),
        sa.Column("supplier", sa.String(length=100), nullable=False),
        sa.Column("order_quantity", QTY, nullable=False),
        sa.Column("scheduled_quantity", QTY, nullable=True),
        sa.Column("order_date", sa.Date(), nullable=False),
        sa.Column("requested_date", sa.Date(), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="納期回答待ち"),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=50), nullable=False, server_default="system"),
        *_timestamps(),
    )
    op.create_index("ix_scheduled_receipts_part_code", "scheduled_receipts", ["part_code"])
    op.create_index("ix_scheduled_receipts_scheduled_date", "scheduled_receipts", ["scheduled_date"])
    op.create_index("ix_scheduled_receipts_status", "scheduled_receipts", ["status"])

    op.create_table(
        "production_plans",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("building_no", sa.String(length=10), nullable=True),
        sa.Column("product_code", sa.String(length=20),
                  sa.ForeignKey("products.product_code", ondelete="RESTRICT"), nullable=False),
        sa.Column("planned_quantity", sa.Integer(), nullable=False),
        sa.Column("actual_quantity", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="計画"),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=50), nullable=False, server_default="system"),
        *_timestamps(),
    )
    op.create_index("ix_production_plans_building_no", "production_plans", ["building_no"])
    op.create_index("ix_production_plans_product_code", "production_plans", ["product_code"])
    op.create_index("ix_production_plans_start_date", "production_plans", ["start_date"])
    op.create_index("ix_production_plans_status", "production_plans", ["status"])

    op.create_table(
        "inventory_reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("production_plan_id", sa.Integer(),
                  sa.ForeignKey("production_plans.id", ondelete="CASCADE"), nullable=False),
        sa.Column("part_code", sa.String(length=30),
                  sa.ForeignKey("parts.part_code", ondelete="RESTRICT"), nullable=False),
        sa.Column("reserved_quantity", QTY, nullable=False),
        sa.Column("reservation_date", sa.DateTime(), nullable=False),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=50), nullable=False, server_default="system"),
        *_timestamps(updated=False),
        sa.UniqueConstraint("production_plan_id", "part_code", name="uk_plan_part"),
    )
    op.create_index("ix_inventory_reservations_production_plan_id", "inventory_reservations", ["production_plan_id"])
    op.create_index("ix_inventory_reservations_part_code", "inventory_reservations", ["part_code"])
    op.create_index("ix_reservation_part_plan", "inventory_reservations", ["part_code", "production_plan_id"])

    op.create_table(
        "sys_audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor", sa.String(length=128), nullable=False),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("payload", sa.JSON(), nullable=False),
        *_timestamps(updated=False),
    )
    for col in ("actor", "action", "entity_type", "entity_id", "request_id"):
        op.create_index(f"ix_sys_audit_log_{col}", "sys_audit_log", [col])
    op.create_index("ix_audit_entity_time", "sys_audit_log", ["entity_type", "entity_id", "created_at"])


def downgrade():
    op.drop_table("sys_audit_log")
    op.drop_table("inventory_reservations")
    op.drop_table("production_plans")
    op.drop_table("scheduled_receipts")
    op.drop_table("inventory_transactions")
    op.drop_table("inventory")
    op.drop_table("bom_items")
    op.drop_table("work_stations")
    op.drop_table("products")
    op.drop_table("parts")
