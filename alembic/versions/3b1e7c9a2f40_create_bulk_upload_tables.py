"""create_bulk_upload_tables

Revision ID: 3b1e7c9a2f40
Revises:
Create Date: 2026-10-16 09:00:00.000000

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3b1e7c9a2f40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    # Timestamps (from TimestampMixin)
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Apply migration - create catalog tables and upload_job."""
    # Create category table
    op.create_table(
        "category",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("category_code", sa.String(length=50), nullable=False),
        sa.Column("category_name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("category_code", name="uq_category_code"),
    )
    op.create_index(op.f("ix_category_category_code"), "category", ["category_code"], unique=False)

    # Create customer table
    op.create_table(
        "customer",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("customer_code", sa.String(length=50), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("date_of_birth", sa.Date(), nullable=True),
        sa.Column("country", sa.String(length=100), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("postal_code", sa.String(length=20), nullable=True),
        sa.Column("loyalty_points", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("customer_code", name="uq_customer_code"),
        sa.UniqueConstraint("email", name="uq_customer_email"),
        sa.CheckConstraint("loyalty_points >= 0", name="ck_customer_loyalty_points_non_negative"),
    )
    op.create_index(op.f("ix_customer_customer_code"), "customer", ["customer_code"], unique=False)

    # Create product table
    op.create_table(
        "product",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_code", sa.String(length=50), nullable=False),
        sa.Column("product_name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("unit_price", sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column("stock_quantity", sa.Integer(), nullable=False),
        sa.Column("weight_kg", sa.Numeric(precision=8, scale=3), nullable=True),
        sa.Column("brand", sa.String(length=100), nullable=True),
        sa.Column("sku", sa.String(length=100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["category_id"], ["category.id"]),
        sa.UniqueConstraint("product_code", name="uq_product_code"),
        sa.UniqueConstraint("sku", name="uq_product_sku"),
        sa.CheckConstraint("unit_price >= 0", name="ck_product_unit_price_non_negative"),
        sa.CheckConstraint("stock_quantity >= 0", name="ck_product_stock_non_negative"),
    )
    op.create_index(op.f("ix_product_product_code"), "product", ["product_code"], unique=False)
    op.create_index(op.f("ix_product_category_id"), "product", ["category_id"], unique=False)

    # Create customer_order table
    op.create_table(
        "customer_order",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_number", sa.String(length=50), nullable=False),
        sa.Column("customer_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("total_amount", sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column("discount_amount", sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column("shipping_amount", sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("shipping_address", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("ordered_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["customer_id"], ["customer.id"]),
        sa.UniqueConstraint("order_number", name="uq_customer_order_number"),
    )
    op.create_index(
        op.f("ix_customer_order_order_number"), "customer_order", ["order_number"], unique=False
    )
    op.create_index(
        op.f("ix_customer_order_customer_id"), "customer_order", ["customer_id"], unique=False
    )
    op.create_index(
        "ix_customer_order_customer_ordered",
        "customer_order",
        ["customer_id", "ordered_at"],
        unique=False,
    )

    # Create order_item table
    op.create_table(
        "order_item",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column("discount", sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column(
            "line_total",
            sa.Numeric(precision=15, scale=2),
            sa.Computed("quantity * unit_price - discount", persisted=True),
            nullable=False,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["order_id"], ["customer_order.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["product.id"]),
        sa.UniqueConstraint("order_id", "product_id", name="uq_order_item_order_product"),
        sa.CheckConstraint("quantity >= 1", name="ck_order_item_quantity_positive"),
        sa.CheckConstraint("unit_price >= 0", name="ck_order_item_unit_price_non_negative"),
    )
    op.create_index(op.f("ix_order_item_order_id"), "order_item", ["order_id"], unique=False)
    op.create_index(op.f("ix_order_item_product_id"), "order_item", ["product_id"], unique=False)

    # Create upload_job table
    op.create_table(
        "upload_job",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.String(length=32), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("file_type", sa.String(length=10), nullable=False),
        sa.Column("entity_type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("total_rows", sa.BigInteger(), nullable=False),
        sa.Column("processed_rows", sa.BigInteger(), nullable=False),
        sa.Column("failed_rows", sa.BigInteger(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'PARTIAL')",
            name="ck_upload_job_valid_status",
        ),
        sa.CheckConstraint("file_type IN ('CSV', 'JSON')", name="ck_upload_job_valid_file_type"),
        sa.CheckConstraint(
            "entity_type IN ('CUSTOMERS', 'PRODUCTS', 'ORDERS')",
            name="ck_upload_job_valid_entity_type",
        ),
        sa.CheckConstraint(
            "processed_rows >= 0 AND failed_rows >= 0 AND total_rows >= 0",
            name="ck_upload_job_counters_non_negative",
        ),
    )
    op.create_index(op.f("ix_upload_job_job_id"), "upload_job", ["job_id"], unique=True)
    op.create_index(op.f("ix_upload_job_status"), "upload_job", ["status"], unique=False)
    op.create_index(
        "ix_upload_job_status_created", "upload_job", ["status", "created_at"], unique=False
    )


def downgrade() -> None:
    """Revert migration - drop upload and catalog tables."""
    op.drop_index("ix_upload_job_status_created", table_name="upload_job")
    op.drop_index(op.f("ix_upload_job_status"), table_name="upload_job")
    op.drop_index(op.f("ix_upload_job_job_id"), table_name="upload_job")
    op.drop_table("upload_job")

    op.drop_index(op.f("ix_order_item_product_id"), table_name="order_item")
    op.drop_index(op.f("ix_order_item_order_id"), table_name="order_item")
    op.drop_table("order_item")

    op.drop_index("ix_customer_order_customer_ordered", table_name="customer_order")
    op.drop_index(op.f("ix_customer_order_customer_id"), table_name="customer_order")
    op.drop_index(op.f("ix_customer_order_order_number"), table_name="customer_order")
    op.drop_table("customer_order")

    op.drop_index(op.f("ix_product_category_id"), table_name="product")
    op.drop_index(op.f("ix_product_product_code"), table_name="product")
    op.drop_table("product")

    op.drop_index(op.f("ix_customer_customer_code"), table_name="customer")
    op.drop_table("customer")

    op.drop_index(op.f("ix_category_category_code"), table_name="category")
    op.drop_table("category")
