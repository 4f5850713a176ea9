"""Initial field ledger schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
    ]


def upgrade():
    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(64), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("role", sa.String(16), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("managed_by_id", sa.Integer(), nullable=True),
        sa.Column("pending_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("credit_limit_cents", sa.Integer(), nullable=True),
        sa.Column("stock_revision", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.ForeignKeyConstraint(["managed_by_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_accounts_email"),
        sa.CheckConstraint("pending_amount_cents >= 0", name="ck_accounts_pending_non_negative"),
        sa.CheckConstraint(
            "credit_limit_cents IS NULL OR credit_limit_cents >= 0",
            name="ck_accounts_credit_limit_non_negative",
        ),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("accounts", schema=None) as batch_op:
        batch_op.create_index("ix_accounts_role", ["role"], unique=False)
        batch_op.create_index("ix_accounts_managed_by_id", ["managed_by_id"], unique=False)
        batch_op.create_index("ix_accounts_role_active", ["role", "is_active"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(64), nullable=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(128), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price_cents", sa.Integer(), nullable=True),
        sa.Column("stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("sku", name="uq_products_sku"),
        sa.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_category_active", ["category", "is_active"], unique=False)

    op.create_table(
        "shop_salesman_assignments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("salesman_id", sa.Integer(), nullable=False),
        sa.Column("shopkeeper_id", sa.Integer(), nullable=False),
        sa.Column("assigned_by_id", sa.Integer(), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_by_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["salesman_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["shopkeeper_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["assigned_by_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["revoked_by_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("shop_salesman_assignments", schema=None) as batch_op:
        batch_op.create_index("ix_shop_salesman_assignments_salesman_id", ["salesman_id"], unique=False)
        batch_op.create_index("ix_shop_salesman_assignments_shopkeeper_id", ["shopkeeper_id"], unique=False)
        batch_op.create_index("ix_assignments_salesman_active", ["salesman_id", "is_active"], unique=False)
        batch_op.create_index("ix_assignments_pair", ["salesman_id", "shopkeeper_id"], unique=False)
        batch_op.create_index(
            "uq_assignments_active_pair",
            ["salesman_id", "shopkeeper_id"],
            unique=True,
            sqlite_where=sa.text("is_active = 1"),
            postgresql_where=sa.text("is_active"),
        )

    op.create_table(
        "distributions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("from_account_id", sa.Integer(), nullable=False),
        sa.Column("to_account_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("distribution_type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("returned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("return_reason", sa.Text(), nullable=False, server_default=""),
        sa.Column("stock_restored_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["from_account_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["to_account_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quantity >= 1", name="ck_distributions_quantity_positive"),
        sa.CheckConstraint("unit_price_cents >= 0", name="ck_distributions_unit_price_non_negative"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("distributions", schema=None) as batch_op:
        batch_op.create_index("ix_distributions_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_distributions_distribution_type", ["distribution_type"], unique=False)
        batch_op.create_index("ix_distributions_status", ["status"], unique=False)
        batch_op.create_index(
            "ix_distributions_to_product",
            ["to_account_id", "product_id", "distribution_type", "status"],
            unique=False,
        )
        batch_op.create_index(
            "ix_distributions_from_product",
            ["from_account_id", "product_id", "distribution_type", "status"],
            unique=False,
        )
        batch_op.create_index("ix_distributions_created", ["created_at"], unique=False)

    op.create_table(
        "recoveries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("recovery_type", sa.String(32), nullable=False),
        sa.Column("shopkeeper_id", sa.Integer(), nullable=False),
        sa.Column("salesman_id", sa.Integer(), nullable=False),
        sa.Column("recorded_by_id", sa.Integer(), nullable=False),
        sa.Column("amount_collected_cents", sa.Integer(), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False),
        sa.Column("items_value_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("net_payment_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("previous_pending_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("new_pending_amount_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default="completed"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("recovery_date", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("recovery_location", sa.String(255), nullable=True),
        sa.Column("receipt_number", sa.String(64), nullable=True),
        sa.Column("bank_details", sa.JSON(), nullable=True),
        sa.Column("reversed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reversed_by_id", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["shopkeeper_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["salesman_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["recorded_by_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["reversed_by_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("amount_collected_cents >= 0", name="ck_recoveries_amount_non_negative"),
        sa.CheckConstraint("items_value_cents >= 0", name="ck_recoveries_items_value_non_negative"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("recoveries", schema=None) as batch_op:
        batch_op.create_index("ix_recoveries_shopkeeper_id", ["shopkeeper_id"], unique=False)
        batch_op.create_index("ix_recoveries_salesman_id", ["salesman_id"], unique=False)
        batch_op.create_index(
            "ix_recoveries_parties_date", ["shopkeeper_id", "salesman_id", "recovery_date"], unique=False
        )
        batch_op.create_index("ix_recoveries_status_date", ["status", "recovery_date"], unique=False)

    op.create_table(
        "recovery_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("recovery_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("total_price_cents", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["recovery_id"], ["recoveries.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quantity >= 1", name="ck_recovery_items_quantity_positive"),
        sa.CheckConstraint("unit_price_cents >= 0", name="ck_recovery_items_unit_price_non_negative"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("recovery_items", schema=None) as batch_op:
        batch_op.create_index("ix_recovery_items_recovery_id", ["recovery_id"], unique=False)
        batch_op.create_index("ix_recovery_items_product_id", ["product_id"], unique=False)

    op.create_table(
        "ledger_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("event_category", sa.String(32), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("shopkeeper_id", sa.Integer(), nullable=True),
        sa.Column("salesman_id", sa.Integer(), nullable=True),
        sa.Column("product_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(["actor_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["shopkeeper_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["salesman_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("ledger_events", schema=None) as batch_op:
        batch_op.create_index("ix_ledger_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_ledger_events_event_category", ["event_category"], unique=False)
        batch_op.create_index("ix_ledger_events_actor_id", ["actor_id"], unique=False)
        batch_op.create_index("ix_ledger_events_shopkeeper_id", ["shopkeeper_id"], unique=False)
        batch_op.create_index("ix_ledger_events_salesman_id", ["salesman_id"], unique=False)
        batch_op.create_index("ix_ledger_events_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_ledger_events_entity", ["entity_type", "entity_id"], unique=False)
        batch_op.create_index("ix_ledger_events_occurred", ["occurred_at"], unique=False)

    op.create_table(
        "receipts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("receipt_type", sa.String(16), nullable=False, server_default="recovery"),
        sa.Column("recovery_id", sa.Integer(), nullable=False),
        sa.Column("shopkeeper_id", sa.Integer(), nullable=False),
        sa.Column("salesman_id", sa.Integer(), nullable=False),
        sa.Column("printed_by_id", sa.Integer(), nullable=False),
        sa.Column("receipt_content", sa.Text(), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="printed"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("printed_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["recovery_id"], ["recoveries.id"]),
        sa.ForeignKeyConstraint(["shopkeeper_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["salesman_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["printed_by_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("receipts", schema=None) as batch_op:
        batch_op.create_index("ix_receipts_recovery_id", ["recovery_id"], unique=False)
        batch_op.create_index("ix_receipts_shopkeeper_id", ["shopkeeper_id"], unique=False)
        batch_op.create_index("ix_receipts_salesman_id", ["salesman_id"], unique=False)
        batch_op.create_index("ix_receipts_salesman_printed", ["salesman_id", "printed_at"], unique=False)


def downgrade():
    op.drop_table("receipts")
    op.drop_table("ledger_events")
    op.drop_table("recovery_items")
    op.drop_table("recoveries")
    op.drop_table("distributions")
    op.drop_table("shop_salesman_assignments")
    op.drop_table("products")
    op.drop_table("accounts")
