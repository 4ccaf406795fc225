"""Initial stock ledger tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns() -> list[sa.Column]:
    """id, uid and timestamps shared by the BaseModel tables."""
    return [
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("uid", sa.String(40), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def _quantity(name: str) -> sa.Column:
    return sa.Column(name, sa.Numeric(15, 3), nullable=False, server_default="0")


def _money(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.Numeric(15, 2), nullable=True)
    return sa.Column(name, sa.Numeric(15, 2), nullable=False, server_default="0.00")


def upgrade() -> None:
    # Warehouses - stock locations
    op.create_table(
        "warehouses",
        *_base_columns(),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_warehouses_uid", "warehouses", ["uid"], unique=True)
    op.create_index("ix_warehouses_code", "warehouses", ["code"], unique=True)

    # Inventory config - single row with the consumption policy
    op.create_table(
        "inventory_config",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("stock_consumption_strategy", sa.String(10), nullable=False, server_default="FIFO"),
        sa.Column("allow_negative_stock", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("expiry_alert_days", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("default_warehouse_id", sa.BigInteger(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["default_warehouse_id"], ["warehouses.id"], ondelete="SET NULL"),
    )

    # Inventory items - stock per item and warehouse
    op.create_table(
        "inventory_items",
        *_base_columns(),
        sa.Column("sku", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("unit", sa.String(20), nullable=True),
        sa.Column("warehouse_id", sa.BigInteger(), nullable=False),
        sa.Column("product_id", sa.String(100), nullable=True),
        sa.Column("product_variant_id", sa.String(100), nullable=True),
        _quantity("current_stock"),
        _quantity("reserved_stock"),
        _quantity("available_stock"),
        _quantity("reorder_level"),
        _quantity("max_stock_level"),
        _money("cost_price"),
        _money("selling_price"),
        sa.Column("batch_tracking_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("serial_tracking_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("expiry_tracking_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.UniqueConstraint(
            "warehouse_id",
            "product_id",
            "product_variant_id",
            name="uq_inventory_item_product_warehouse",
        ),
    )
    op.create_index("ix_inventory_items_uid", "inventory_items", ["uid"], unique=True)
    op.create_index("ix_inventory_items_sku", "inventory_items", ["sku"], unique=True)
    op.create_index("ix_inventory_items_warehouse_id", "inventory_items", ["warehouse_id"])
    op.create_index("ix_inventory_items_product_id", "inventory_items", ["product_id"])

    # Inventory batches - lots with expiry data
    op.create_table(
        "inventory_batches",
        *_base_columns(),
        sa.Column("batch_number", sa.String(100), nullable=False),
        sa.Column("lot_number", sa.String(100), nullable=True),
        sa.Column("inventory_item_id", sa.BigInteger(), nullable=False),
        sa.Column("warehouse_id", sa.BigInteger(), nullable=False),
        _quantity("total_quantity"),
        _quantity("available_quantity"),
        _quantity("reserved_quantity"),
        sa.Column("manufacturing_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("supplier_id", sa.String(100), nullable=True),
        sa.Column("supplier_name", sa.String(255), nullable=True),
        sa.Column("purchase_order_number", sa.String(100), nullable=True),
        _money("cost_per_unit", nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_expired", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["inventory_item_id"], ["inventory_items.id"]),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.UniqueConstraint(
            "inventory_item_id",
            "warehouse_id",
            "batch_number",
            name="uq_inventory_batch_item_warehouse_number",
        ),
    )
    op.create_index("ix_inventory_batches_uid", "inventory_batches", ["uid"], unique=True)
    op.create_index("ix_inventory_batches_batch_number", "inventory_batches", ["batch_number"])
    op.create_index("ix_inventory_batches_inventory_item_id", "inventory_batches", ["inventory_item_id"])
    op.create_index("ix_inventory_batches_warehouse_id", "inventory_batches", ["warehouse_id"])
    op.create_index("ix_inventory_batches_expiry_date", "inventory_batches", ["expiry_date"])

    # Inventory serials - individually tracked units
    op.create_table(
        "inventory_serials",
        *_base_columns(),
        sa.Column("serial_number", sa.String(100), nullable=False),
        sa.Column("inventory_item_id", sa.BigInteger(), nullable=False),
        sa.Column("warehouse_id", sa.BigInteger(), nullable=False),
        sa.Column("batch_id", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="AVAILABLE"),
        sa.Column("received_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sold_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("returned_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("warranty_expiry_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sold_reference_type", sa.String(50), nullable=True),
        sa.Column("sold_reference_id", sa.String(100), nullable=True),
        sa.Column("sold_reference_number", sa.String(100), nullable=True),
        sa.Column("return_reference_type", sa.String(50), nullable=True),
        sa.Column("return_reference_id", sa.String(100), nullable=True),
        sa.Column("customer_id", sa.String(100), nullable=True),
        sa.Column("customer_name", sa.String(255), nullable=True),
        _money("cost_price"),
        _money("selling_price"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["inventory_item_id"], ["inventory_items.id"]),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.ForeignKeyConstraint(["batch_id"], ["inventory_batches.id"]),
    )
    op.create_index("ix_inventory_serials_uid", "inventory_serials", ["uid"], unique=True)
    op.create_index("ix_inventory_serials_serial_number", "inventory_serials", ["serial_number"], unique=True)
    op.create_index("ix_inventory_serials_inventory_item_id", "inventory_serials", ["inventory_item_id"])
    op.create_index("ix_inventory_serials_warehouse_id", "inventory_serials", ["warehouse_id"])
    op.create_index("ix_inventory_serials_batch_id", "inventory_serials", ["batch_id"])
    op.create_index("ix_inventory_serials_status", "inventory_serials", ["status"])
    op.create_index("ix_inventory_serials_customer_id", "inventory_serials", ["customer_id"])

    # Inventory transactions - append-only movement history
    op.create_table(
        "inventory_transactions",
        *_base_columns(),
        sa.Column("transaction_number", sa.String(50), nullable=False),
        sa.Column("transaction_type", sa.String(20), nullable=False),
        sa.Column("transaction_reason", sa.String(50), nullable=False),
        sa.Column("inventory_item_id", sa.BigInteger(), nullable=False),
        sa.Column("warehouse_id", sa.BigInteger(), nullable=False),
        sa.Column("from_warehouse_id", sa.BigInteger(), nullable=True),
        sa.Column("to_warehouse_id", sa.BigInteger(), nullable=True),
        sa.Column("quantity", sa.Numeric(15, 3), nullable=False),
        sa.Column("balance_after", sa.Numeric(15, 3), nullable=False),
        _money("unit_cost"),
        _money("total_cost"),
        sa.Column("batch_id", sa.BigInteger(), nullable=True),
        sa.Column("serial_numbers", sa.JSON(), nullable=True),
        sa.Column("reference_type", sa.String(50), nullable=True),
        sa.Column("reference_id", sa.String(100), nullable=True),
        sa.Column("reference_number", sa.String(100), nullable=True),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("performed_by", sa.String(200), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["inventory_item_id"], ["inventory_items.id"]),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.ForeignKeyConstraint(["from_warehouse_id"], ["warehouses.id"]),
        sa.ForeignKeyConstraint(["to_warehouse_id"], ["warehouses.id"]),
        sa.ForeignKeyConstraint(["batch_id"], ["inventory_batches.id"]),
    )
    op.create_index("ix_inventory_transactions_uid", "inventory_transactions", ["uid"], unique=True)
    op.create_index(
        "ix_inventory_transactions_transaction_number",
        "inventory_transactions",
        ["transaction_number"],
        unique=True,
    )
    op.create_index("ix_inventory_transactions_transaction_type", "inventory_transactions", ["transaction_type"])
    op.create_index("ix_inventory_transactions_inventory_item_id", "inventory_transactions", ["inventory_item_id"])
    op.create_index("ix_inventory_transactions_warehouse_id", "inventory_transactions", ["warehouse_id"])
    op.create_index("ix_inventory_transactions_batch_id", "inventory_transactions", ["batch_id"])
    op.create_index("ix_inventory_transactions_transaction_date", "inventory_transactions", ["transaction_date"])

    # Inventory ledgers - daily balances
    op.create_table(
        "inventory_ledgers",
        *_base_columns(),
        sa.Column("inventory_item_id", sa.BigInteger(), nullable=False),
        sa.Column("warehouse_id", sa.BigInteger(), nullable=False),
        sa.Column("ledger_date", sa.Date(), nullable=False),
        _quantity("opening_stock"),
        _quantity("stock_in"),
        _quantity("stock_out"),
        _quantity("transfer_in"),
        _quantity("transfer_out"),
        _quantity("adjustment_in"),
        _quantity("adjustment_out"),
        _quantity("closing_stock"),
        _money("average_cost"),
        _money("closing_value"),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["inventory_item_id"], ["inventory_items.id"]),
        sa.ForeignKeyConstraint(["warehouse_id"], ["warehouses.id"]),
        sa.UniqueConstraint(
            "inventory_item_id",
            "warehouse_id",
            "ledger_date",
            name="uq_inventory_ledger_item_warehouse_date",
        ),
    )
    op.create_index("ix_inventory_ledgers_uid", "inventory_ledgers", ["uid"], unique=True)
    op.create_index("ix_inventory_ledgers_inventory_item_id", "inventory_ledgers", ["inventory_item_id"])
    op.create_index("ix_inventory_ledgers_warehouse_id", "inventory_ledgers", ["warehouse_id"])
    op.create_index("ix_inventory_ledgers_ledger_date", "inventory_ledgers", ["ledger_date"])

    # Document sequences - per-day transaction number counters
    op.create_table(
        "document_sequences",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("prefix", sa.String(20), nullable=False),
        sa.Column("period", sa.String(8), nullable=False),
        sa.Column("last_number", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("prefix", "period", name="uq_document_sequence_prefix_period"),
    )

    # Audit log - state changes without a transaction row
    op.create_table(
        "audit_logs",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("performed_by", sa.String(200), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("entity_type", sa.String(100), nullable=False),
        sa.Column("entity_id", sa.BigInteger(), nullable=False),
        sa.Column("entity_identifier", sa.String(200), nullable=True),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_type", "audit_logs", ["entity_type"])
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("document_sequences")
    op.drop_table("inventory_ledgers")
    op.drop_table("inventory_transactions")
    op.drop_table("inventory_serials")
    op.drop_table("inventory_batches")
    op.drop_table("inventory_items")
    op.drop_table("inventory_config")
    op.drop_table("warehouses")
