"""Contract billing schema: customers, price lists, case lines, billing lines and batches."""

from __future__ import annotations

from alembic import context, op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "20250115_0001"
down_revision = None
branch_labels = None
depends_on = None


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False)


BILLING_FREQUENCY = ("monthly", "quarterly", "semi_annual", "annual", "on_demand")
CONTRACT_STATUS = ("active", "signed", "pending", "terminated")
CASE_TYPE = ("private", "business", "contract")
CASE_LINE_STATUS = ("pending", "approved", "billed", "cancelled")
LINE_STATUS = ("pending", "approved", "invoiced", "paid", "cancelled")
LINE_TYPE = ("contract", "ad_hoc")
LINE_SOURCE = ("price_list", "case_completion", "manual")
BATCH_STATUS = ("draft", "generated", "approved", "completed", "cancelled")


def upgrade() -> None:
    bind = op.get_bind()
    if bind is not None:
        dialect_name = bind.dialect.name
    else:
        ctx = context.get_context()
        dialect_name = ctx.dialect.name if ctx is not None else ""

    uuid_type = sa.String(length=36)
    if dialect_name == "postgresql":
        uuid_type = postgresql.UUID(as_uuid=True)

    op.create_table(
        "price_lists",
        sa.Column("price_list_id", uuid_type, primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )

    op.create_table(
        "articles",
        sa.Column("article_id", uuid_type, primary_key=True),
        sa.Column("code", sa.String(), nullable=False, unique=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("default_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("vat_rate", sa.Numeric(5, 2), nullable=True),
        sa.Column("unit", sa.String(), nullable=True),
        sa.Column("category", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.CheckConstraint("default_price >= 0", name="ck_articles_default_price_non_negative"),
    )

    op.create_table(
        "price_list_items",
        sa.Column("price_list_item_id", uuid_type, primary_key=True),
        sa.Column(
            "price_list_id",
            uuid_type,
            sa.ForeignKey("price_lists.price_list_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "article_id",
            uuid_type,
            sa.ForeignKey("articles.article_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("custom_price", sa.Numeric(12, 2), nullable=False),
        sa.UniqueConstraint("price_list_id", "article_id", name="price_list_items_unique_article"),
        sa.CheckConstraint("custom_price >= 0", name="ck_price_list_items_price_non_negative"),
    )

    op.create_table(
        "customers",
        sa.Column("customer_id", uuid_type, primary_key=True),
        sa.Column("company_name", sa.String(), nullable=False),
        sa.Column("organization_number", sa.String(), nullable=True),
        sa.Column("billing_email", sa.String(), nullable=True),
        sa.Column("billing_address", sa.String(), nullable=True),
        sa.Column("contact_address", sa.String(), nullable=True),
        sa.Column(
            "billing_frequency",
            _enum("billing_frequency_enum", *BILLING_FREQUENCY),
            nullable=True,
        ),
        sa.Column(
            "price_list_id",
            uuid_type,
            sa.ForeignKey("price_lists.price_list_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("monthly_value", sa.Numeric(12, 2), nullable=True),
        sa.Column(
            "contract_status",
            _enum("contract_status_enum", *CONTRACT_STATUS),
            nullable=False,
            server_default="active",
        ),
        sa.Column("effective_end_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    )

    op.create_table(
        "contract_billing_batches",
        sa.Column("batch_id", uuid_type, primary_key=True),
        sa.Column("batch_number", sa.String(), nullable=False, unique=True),
        sa.Column("billing_period_start", sa.Date(), nullable=False),
        sa.Column("billing_period_end", sa.Date(), nullable=False),
        sa.Column(
            "billing_frequency",
            _enum("billing_frequency_enum", *BILLING_FREQUENCY),
            nullable=True,
        ),
        sa.Column(
            "status",
            _enum("billing_batch_status_enum", *BATCH_STATUS),
            nullable=False,
            server_default="draft",
        ),
        sa.Column("total_customers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_items", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False, server_default="0"),
        sa.Column("failed_customers", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.CheckConstraint(
            "billing_period_end >= billing_period_start",
            name="ck_contract_billing_batches_valid_range",
        ),
    )

    op.create_table(
        "contract_billing_items",
        sa.Column("billing_item_id", uuid_type, primary_key=True),
        sa.Column(
            "customer_id",
            uuid_type,
            sa.ForeignKey("customers.customer_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("billing_period_start", sa.Date(), nullable=False),
        sa.Column("billing_period_end", sa.Date(), nullable=False),
        sa.Column(
            "article_id",
            uuid_type,
            sa.ForeignKey("articles.article_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("article_code", sa.String(), nullable=True),
        sa.Column("article_name", sa.String(), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 2), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("vat_rate", sa.Numeric(5, 2), nullable=False, server_default="25"),
        sa.Column(
            "status",
            _enum("billing_item_status_enum", *LINE_STATUS),
            nullable=False,
            server_default="pending",
        ),
        sa.Column(
            "item_type",
            _enum("billing_item_type_enum", *LINE_TYPE),
            nullable=False,
            server_default="contract",
        ),
        sa.Column(
            "source",
            _enum("billing_item_source_enum", *LINE_SOURCE),
            nullable=False,
            server_default="price_list",
        ),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("original_price", sa.Numeric(12, 2), nullable=True),
        sa.Column(
            "requires_approval", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "batch_id",
            uuid_type,
            sa.ForeignKey("contract_billing_batches.batch_id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("case_id", sa.String(), nullable=True),
        sa.Column("case_type", _enum("case_type_enum", *CASE_TYPE), nullable=True),
        sa.Column("dedup_key", sa.String(), nullable=True, unique=True),
        sa.Column(
            "generated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invoiced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invoice_number", sa.String(), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.CheckConstraint("quantity > 0", name="ck_contract_billing_items_quantity_positive"),
        sa.CheckConstraint(
            "discount_percent >= 0 AND discount_percent <= 100",
            name="ck_contract_billing_items_discount_range",
        ),
        sa.CheckConstraint(
            "billing_period_end >= billing_period_start",
            name="ck_contract_billing_items_valid_range",
        ),
    )
    op.create_index(
        "contract_billing_items_customer_period_idx",
        "contract_billing_items",
        ["customer_id", "billing_period_start"],
    )
    op.create_index(
        "contract_billing_items_status_idx",
        "contract_billing_items",
        ["status"],
    )

    op.create_table(
        "case_billing_items",
        sa.Column("case_billing_item_id", uuid_type, primary_key=True),
        sa.Column("case_id", sa.String(), nullable=False),
        sa.Column("case_type", _enum("case_type_enum", *CASE_TYPE), nullable=False),
        sa.Column(
            "customer_id",
            uuid_type,
            sa.ForeignKey("customers.customer_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "article_id",
            uuid_type,
            sa.ForeignKey("articles.article_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("article_code", sa.String(), nullable=True),
        sa.Column("article_name", sa.String(), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 2), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("discounted_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("vat_rate", sa.Numeric(5, 2), nullable=False, server_default="25"),
        sa.Column(
            "requires_approval", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("service_date", sa.Date(), nullable=True),
        sa.Column(
            "status",
            _enum("case_billing_item_status_enum", *CASE_LINE_STATUS),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("billed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "billing_item_id",
            uuid_type,
            sa.ForeignKey("contract_billing_items.billing_item_id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("added_by_technician_name", sa.String(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.CheckConstraint("quantity > 0", name="ck_case_billing_items_quantity_positive"),
        sa.CheckConstraint(
            "discount_percent >= 0 AND discount_percent <= 100",
            name="ck_case_billing_items_discount_range",
        ),
    )
    op.create_index(
        "case_billing_items_case_idx",
        "case_billing_items",
        ["case_id", "case_type"],
    )


def downgrade() -> None:
    op.drop_index("case_billing_items_case_idx", table_name="case_billing_items")
    op.drop_table("case_billing_items")
    op.drop_index("contract_billing_items_status_idx", table_name="contract_billing_items")
    op.drop_index(
        "contract_billing_items_customer_period_idx", table_name="contract_billing_items"
    )
    op.drop_table("contract_billing_items")
    op.drop_table("contract_billing_batches")
    op.drop_table("customers")
    op.drop_table("price_list_items")
    op.drop_table("articles")
    op.drop_table("price_lists")
