"""Initial schema for bank reconciliation."""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def _enum(name: str, *values: str) -> postgresql.ENUM:
    return postgresql.ENUM(*values, name=name, create_type=False)


def upgrade() -> None:
    invoice_direction_enum = _enum("invoice_direction_enum", "OUTBOUND", "INBOUND")
    invoice_status_enum = _enum("invoice_status_enum", "DRAFT", "SENT", "ACCEPTED", "REJECTED", "CANCELLED")
    expense_status_enum = _enum("expense_status_enum", "DRAFT", "PENDING", "PAID", "CANCELLED")
    import_job_status_enum = _enum("import_job_status_enum", "PENDING", "PROCESSING", "COMPLETED", "FAILED")
    import_tier_enum = _enum("import_tier_enum", "XML", "PDF_OCR")
    match_status_enum = _enum("match_status_enum", "UNMATCHED", "AUTO_MATCHED", "MANUAL_MATCHED", "IGNORED")
    match_kind_enum = _enum("match_kind_enum", "INVOICE", "EXPENSE", "UNMATCH", "IGNORE")
    match_source_enum = _enum("match_source_enum", "AUTO", "MANUAL")

    bind = op.get_bind()
    for enum_type in (
        invoice_direction_enum,
        invoice_status_enum,
        expense_status_enum,
        import_job_status_enum,
        import_tier_enum,
        match_status_enum,
        match_kind_enum,
        match_source_enum,
    ):
        sa.Enum(*enum_type.enums, name=enum_type.name).create(bind, checkfirst=True)

    op.create_table(
        "bank_accounts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("iban", sa.String(length=34), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_bank_accounts_company_id", "bank_accounts", ["company_id"])

    op.create_table(
        "import_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("bank_account_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("file_checksum", sa.String(length=64), nullable=False),
        sa.Column("original_filename", sa.String(length=255), nullable=False),
        sa.Column("storage_path", sa.String(length=500), nullable=False),
        sa.Column("status", import_job_status_enum, nullable=False),
        sa.Column("tier_used", import_tier_enum, nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.Column("transaction_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["bank_account_id"], ["bank_accounts.id"], ondelete="CASCADE"),
        sa.UniqueConstraint(
            "bank_account_id", "file_checksum", name="uq_import_jobs_account_file_checksum"
        ),
    )
    op.create_index("ix_import_jobs_company_id", "import_jobs", ["company_id"])

    op.create_table(
        "bank_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("account_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("import_job_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("reference", sa.String(length=500), nullable=True),
        sa.Column("counterparty_name", sa.String(length=255), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["account_id"], ["bank_accounts.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["import_job_id"], ["import_jobs.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_bank_transactions_company_id", "bank_transactions", ["company_id"])
    op.create_index(
        "ix_bank_transactions_company_account_date",
        "bank_transactions",
        ["company_id", "account_id", "date"],
    )

    op.create_table(
        "invoices",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("direction", invoice_direction_enum, nullable=False),
        sa.Column("invoice_number", sa.String(length=100), nullable=False),
        sa.Column("buyer_reference", sa.String(length=200), nullable=True),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("total_amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("net_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("status", invoice_status_enum, nullable=False),
        sa.Column("paid_at", sa.Date(), nullable=True),
        sa.Column("status_before_match", invoice_status_enum, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_invoices_company_id", "invoices", ["company_id"])

    op.create_table(
        "expenses",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("vendor_name", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("total_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("status", expense_status_enum, nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=True),
        sa.Column("status_before_match", expense_status_enum, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_expenses_company_id", "expenses", ["company_id"])

    op.create_table(
        "match_records",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("company_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("bank_transaction_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("match_status", match_status_enum, nullable=False),
        sa.Column("match_kind", match_kind_enum, nullable=False),
        sa.Column("matched_invoice_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("matched_expense_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("confidence_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reason", sa.String(length=500), nullable=True),
        sa.Column("source", match_source_enum, nullable=False),
        sa.Column("created_by", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["bank_transaction_id"], ["bank_transactions.id"], ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["matched_invoice_id"], ["invoices.id"]),
        sa.ForeignKeyConstraint(["matched_expense_id"], ["expenses.id"]),
    )
    op.create_index("ix_match_records_company_id", "match_records", ["company_id"])
    op.create_index(
        "ix_match_records_txn_created",
        "match_records",
        ["bank_transaction_id", "created_at", "id"],
    )

    # The ledger is append-only at the database level too.
    op.execute(
        """
        CREATE FUNCTION match_records_append_only() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'match_records is append-only';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER match_records_no_update_delete
        BEFORE UPDATE OR DELETE ON match_records
        FOR EACH ROW EXECUTE FUNCTION match_records_append_only();
        """
    )


def downgrade() -> None:
    op.execute("DROP TRIGGER IF EXISTS match_records_no_update_delete ON match_records")
    op.execute("DROP FUNCTION IF EXISTS match_records_append_only()")
    op.drop_table("match_records")
    op.drop_table("expenses")
    op.drop_table("invoices")
    op.drop_table("bank_transactions")
    op.drop_table("import_jobs")
    op.drop_table("bank_accounts")
    for enum_name in (
        "match_source_enum",
        "match_kind_enum",
        "match_status_enum",
        "import_tier_enum",
        "import_job_status_enum",
        "expense_status_enum",
        "invoice_status_enum",
        "invoice_direction_enum",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)
