"""initial stock ledger schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


class GUID(sa.TypeDecorator):
    impl = sa.CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            from sqlalchemy.dialects.postgresql import UUID

            return dialect.type_descriptor(UUID(as_uuid=True))
        return dialect.type_descriptor(sa.CHAR(36))


def _line_columns(voucher_table: str) -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("voucher_id", GUID(), sa.ForeignKey(f"{voucher_table}.id"), nullable=False, index=True),
        sa.Column("product_id", GUID(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("item", sa.String(length=255), nullable=False),
        sa.Column("series_name", sa.String(length=255), nullable=False),
        sa.Column("category_name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("size_breakdown", sa.JSON(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "products",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("item", sa.String(length=255), nullable=False),
        sa.Column("series_name", sa.String(length=255), nullable=False),
        sa.Column("category_name", sa.String(length=255), nullable=False),
        sa.Column("origin", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("item", "series_name", "category_name", name="uq_products_triple"),
    )
    op.create_table(
        "ledger_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("movement_type", sa.String(length=3), nullable=False),
        sa.Column("voucher_kind", sa.String(length=16), nullable=False),
        sa.Column("voucher_id", GUID(), nullable=False, index=True),
        sa.Column("product_id", GUID(), sa.ForeignKey("products.id"), nullable=False, index=True),
        sa.Column("item", sa.String(length=255), nullable=False),
        sa.Column("series_name", sa.String(length=255), nullable=False),
        sa.Column("category_name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("location", sa.String(length=100), nullable=False),
        sa.Column("actor", sa.String(length=150), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_ledger_entries_item_created", "ledger_entries", ["item", "created_at"])
    op.create_index("ix_ledger_entries_product_location", "ledger_entries", ["product_id", "location"])

    op.create_table(
        "stock_totals",
        sa.Column("product_id", GUID(), sa.ForeignKey("products.id"), primary_key=True),
        sa.Column("total_quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "stock_locations",
        sa.Column("product_id", GUID(), sa.ForeignKey("products.id"), primary_key=True),
        sa.Column("location", sa.String(length=100), primary_key=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "stock_sizes",
        sa.Column("product_id", GUID(), sa.ForeignKey("products.id"), primary_key=True),
        sa.Column("size_code", sa.String(length=20), primary_key=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "incoming_vouchers",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("location", sa.String(length=100), nullable=False),
        sa.Column("actor", sa.String(length=150), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table("incoming_voucher_lines", *_line_columns("incoming_vouchers"))
    op.create_table(
        "sale_vouchers",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("location", sa.String(length=100), nullable=False),
        sa.Column("customer", sa.String(length=255), nullable=False),
        sa.Column("external_ref", sa.String(length=100), nullable=True),
        sa.Column("actor", sa.String(length=150), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table("sale_voucher_lines", *_line_columns("sale_vouchers"))
    op.create_table(
        "transfer_vouchers",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("from_location", sa.String(length=100), nullable=False),
        sa.Column("to_location", sa.String(length=100), nullable=False),
        sa.Column("actor", sa.String(length=150), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table("transfer_voucher_lines", *_line_columns("transfer_vouchers"))

    op.create_table(
        "activity_log",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("actor", sa.String(length=150), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("trace_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_table(
        "idempotency_records",
        sa.Column("id", GUID(), primary_key=True),
        sa.Column("endpoint", sa.String(length=255), nullable=False),
        sa.Column("method", sa.String(length=10), nullable=False),
        sa.Column("idempotency_key", sa.String(length=255), nullable=False),
        sa.Column("request_hash", sa.String(length=64), nullable=False),
        sa.Column("state", sa.String(length=20), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=True),
        sa.Column("response_body", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("endpoint", "method", "idempotency_key", name="uq_idempotency"),
    )


def downgrade() -> None:
    op.drop_table("idempotency_records")
    op.drop_table("activity_log")
    op.drop_table("transfer_voucher_lines")
    op.drop_table("transfer_vouchers")
    op.drop_table("sale_voucher_lines")
    op.drop_table("sale_vouchers")
    op.drop_table("incoming_voucher_lines")
    op.drop_table("incoming_vouchers")
    op.drop_table("stock_sizes")
    op.drop_table("stock_locations")
    op.drop_table("stock_totals")
    op.drop_index("ix_ledger_entries_product_location", table_name="ledger_entries")
    op.drop_index("ix_ledger_entries_item_created", table_name="ledger_entries")
    op.drop_table("ledger_entries")
    op.drop_table("products")
