"""Add sales records and salesman commission rates

Revision ID: 20261019_sales
Revises: 20261018_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_sales"
down_revision = "20261018_initial"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("accounts", schema=None) as batch_op:
        batch_op.add_column(
            sa.Column("commission_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("0"))
        )
        batch_op.create_check_constraint(
            "ck_accounts_commission_rate_range",
            "commission_rate_bps >= 0 AND commission_rate_bps <= 10000",
        )

    op.create_table(
        "sales",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("salesman_id", sa.Integer(), nullable=False),
        sa.Column("shopkeeper_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("recorded_by_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("commission_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("commission_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("profit_cents", sa.Integer(), nullable=False),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("payment_method", sa.String(32), nullable=False, server_default="cash"),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("sale_date", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["salesman_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["shopkeeper_id"], ["accounts.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["recorded_by_id"], ["accounts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("quantity >= 1", name="ck_sales_quantity_positive"),
        sa.CheckConstraint("unit_price_cents >= 0", name="ck_sales_unit_price_non_negative"),
        sa.CheckConstraint("commission_cents >= 0", name="ck_sales_commission_non_negative"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("sales", schema=None) as batch_op:
        batch_op.create_index("ix_sales_salesman_id", ["salesman_id"], unique=False)
        batch_op.create_index("ix_sales_shopkeeper_id", ["shopkeeper_id"], unique=False)
        batch_op.create_index("ix_sales_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_sales_payment_status", ["payment_status"], unique=False)
        batch_op.create_index("ix_sales_salesman_date", ["salesman_id", "sale_date"], unique=False)
        batch_op.create_index("ix_sales_shopkeeper_date", ["shopkeeper_id", "sale_date"], unique=False)


def downgrade():
    op.drop_table("sales")
    with op.batch_alter_table("accounts", schema=None) as batch_op:
        batch_op.drop_constraint("ck_accounts_commission_rate_range", type_="check")
        batch_op.drop_column("commission_rate_bps")
