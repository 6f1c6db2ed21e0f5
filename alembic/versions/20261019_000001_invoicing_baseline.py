"""invoicing baseline: businesses, customers, invoices, items, sequences

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None

# sequence_group lo usan dos tablas: el tipo se crea una sola vez
business_type = postgresql.ENUM(
    "licensed_dealer", "exempt_dealer", "limited_company", name="business_type", create_type=False
)
document_type = postgresql.ENUM(
    "tax_invoice", "tax_invoice_receipt", "receipt", "credit_note", name="document_type", create_type=False
)
invoice_status = postgresql.ENUM(
    "draft", "finalized", "sent", "paid", "partially_paid", "cancelled", "credited",
    name="invoice_status", create_type=False
)
sequence_group = postgresql.ENUM(
    "tax_document", "credit_note", "receipt", name="sequence_group", create_type=False
)

ENUMS = (business_type, document_type, invoice_status, sequence_group)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "businesses",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("business_type", business_type, nullable=False),
        sa.Column("invoice_number_prefix", sa.String(length=20), nullable=True),
        sa.Column("starting_invoice_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("default_vat_rate", sa.Integer(), nullable=False, server_default=sa.text("1700")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "customers",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("business_id", sa.Uuid(), sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("tax_id", sa.String(length=50), nullable=True),
        sa.Column("email", sa.String(length=100), nullable=True),
        sa.Column("street_address", sa.String(length=200), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("postal_code", sa.String(length=20), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_customers_business_id", "customers", ["business_id"])
    op.create_index("ix_customers_is_active", "customers", ["is_active"])

    op.create_table(
        "invoices",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("business_id", sa.Uuid(), sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True),
        sa.Column("customer_name", sa.String(length=200), nullable=True),
        sa.Column("customer_tax_id", sa.String(length=50), nullable=True),
        sa.Column("customer_address", sa.Text(), nullable=True),
        sa.Column("customer_email", sa.String(length=100), nullable=True),
        sa.Column("document_type", document_type, nullable=False),
        sa.Column("status", invoice_status, nullable=False, server_default="draft"),
        sa.Column("sequence_group", sequence_group, nullable=True),
        sa.Column("sequence_number", sa.Integer(), nullable=True),
        sa.Column("full_number", sa.String(length=50), nullable=True),
        sa.Column("invoice_date", sa.Date(), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("internal_notes", sa.Text(), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="ILS"),
        sa.Column("subtotal_agora", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("discount_agora", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_excl_vat_agora", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("vat_agora", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_incl_vat_agora", sa.Integer(), nullable=False, server_default=sa.text("0")),
        *_timestamps(),
    )
    op.create_index("ix_invoices_business_id", "invoices", ["business_id"])
    op.create_index("invoices_business_status_idx", "invoices", ["business_id", "status"])
    op.create_index("invoices_business_date_idx", "invoices", ["business_id", "invoice_date"])
    op.create_index("invoices_business_customer_idx", "invoices", ["business_id", "customer_id"])
    op.create_index(
        "invoices_business_seqgroup_seqnum_unique",
        "invoices",
        ["business_id", "sequence_group", "sequence_number"],
        unique=True,
        postgresql_where=sa.text("sequence_number IS NOT NULL"),
        sqlite_where=sa.text("sequence_number IS NOT NULL"),
    )

    op.create_table(
        "invoice_items",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("invoice_id", sa.Uuid(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("catalog_number", sa.String(length=100), nullable=True),
        sa.Column("quantity", sa.Numeric(12, 4), nullable=False),
        sa.Column("unit_price_agora", sa.Integer(), nullable=False),
        sa.Column("discount_percent", sa.Numeric(5, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("vat_rate_basis_points", sa.Integer(), nullable=False),
        sa.Column("line_total_agora", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("vat_amount_agora", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("line_total_incl_vat_agora", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.UniqueConstraint("invoice_id", "position", name="invoice_items_invoice_position_unique"),
    )
    op.create_index("ix_invoice_items_invoice_id", "invoice_items", ["invoice_id"])

    op.create_table(
        "invoice_sequences",
        sa.Column("business_id", sa.Uuid(), sa.ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sequence_group", sequence_group, nullable=False),
        sa.Column("next_number", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.PrimaryKeyConstraint("business_id", "sequence_group", name="invoice_sequences_pkey"),
    )


def downgrade() -> None:
    op.drop_table("invoice_sequences")
    op.drop_index("ix_invoice_items_invoice_id", table_name="invoice_items")
    op.drop_table("invoice_items")
    op.drop_index("invoices_business_seqgroup_seqnum_unique", table_name="invoices")
    op.drop_index("invoices_business_customer_idx", table_name="invoices")
    op.drop_index("invoices_business_date_idx", table_name="invoices")
    op.drop_index("invoices_business_status_idx", table_name="invoices")
    op.drop_index("ix_invoices_business_id", table_name="invoices")
    op.drop_table("invoices")
    op.drop_index("ix_customers_is_active", table_name="customers")
    op.drop_index("ix_customers_business_id", table_name="customers")
    op.drop_table("customers")
    op.drop_table("businesses")

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
