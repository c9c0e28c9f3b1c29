"""Ledger core tables with row-level security

Revision ID: 20251020_000001
Revises:
Create Date: 2025-10-20 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from ledger_api.core.db import TENANT_TABLES, rls_statements


# revision identifiers, used by Alembic.
revision: str = "20251020_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(14, 2)


def _tenant_columns() -> list:
    return [
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("organization_id", sa.String(), sa.ForeignKey("organization.id"), nullable=False, index=True),
    ]


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    op.create_table(
        "organization",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("access_locked_at", sa.DateTime(), nullable=True),
        sa.Column("access_locked_by", sa.String(), nullable=True),
        sa.Column("access_locked_reason", sa.String(), nullable=True),
        _created_at(),
    )

    op.create_table(
        "fiscal_year",
        *_tenant_columns(),
        sa.Column("label", sa.String(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("locked_at", sa.DateTime(), nullable=True),
        _created_at(),
        sa.UniqueConstraint("organization_id", "label", name="fiscal_year_org_label_key"),
        sa.CheckConstraint("end_date >= start_date", name="fiscal_year_range_check"),
    )

    op.create_table(
        "journal",
        *_tenant_columns(),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False, server_default="GENERAL"),
        _created_at(),
        sa.UniqueConstraint("organization_id", "code", name="journal_org_code_key"),
    )

    op.create_table(
        "account",
        *_tenant_columns(),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("organization_id", "code", name="account_org_code_key"),
    )

    op.create_table(
        "project",
        *_tenant_columns(),
        sa.Column("code", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        _created_at(),
        sa.UniqueConstraint("organization_id", "code", name="project_org_code_key"),
    )

    op.create_table(
        "bank_account",
        *_tenant_columns(),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("iban", sa.String(), nullable=True),
        sa.Column("account_id", sa.String(), sa.ForeignKey("account.id"), nullable=False),
        _created_at(),
        sa.UniqueConstraint("organization_id", "name", name="bank_account_org_name_key"),
    )

    op.create_table(
        "bank_statement",
        *_tenant_columns(),
        sa.Column("bank_account_id", sa.String(), sa.ForeignKey("bank_account.id"), nullable=False, index=True),
        sa.Column("statement_date", sa.Date(), nullable=False),
        sa.Column("opening_balance", MONEY, nullable=False),
        sa.Column("closing_balance", MONEY, nullable=False),
        _created_at(),
    )

    op.create_table(
        "entry",
        *_tenant_columns(),
        sa.Column("fiscal_year_id", sa.String(), sa.ForeignKey("fiscal_year.id"), nullable=False, index=True),
        sa.Column("journal_id", sa.String(), sa.ForeignKey("journal.id"), nullable=False, index=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("reference", sa.String(), nullable=False),
        sa.Column("memo", sa.String(), nullable=True),
        sa.Column("locked_at", sa.DateTime(), nullable=True),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("bank_statement_id", sa.String(), sa.ForeignKey("bank_statement.id"), nullable=True, index=True),
        sa.Column("reversal_of_id", sa.String(), sa.ForeignKey("entry.id"), nullable=True, unique=True),
        _created_at(),
        sa.UniqueConstraint("organization_id", "reference", name="entry_org_reference_key"),
    )
    op.create_index("idx_entry_org_fiscal_year_date", "entry", ["organization_id", "fiscal_year_id", "date"])

    op.create_table(
        "entry_line",
        *_tenant_columns(),
        sa.Column("entry_id", sa.String(), sa.ForeignKey("entry.id"), nullable=False, index=True),
        sa.Column("account_id", sa.String(), sa.ForeignKey("account.id"), nullable=False, index=True),
        sa.Column("project_id", sa.String(), sa.ForeignKey("project.id"), nullable=True),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("debit", MONEY, nullable=False, server_default="0"),
        sa.Column("credit", MONEY, nullable=False, server_default="0"),
        sa.CheckConstraint(
            "(debit > 0 AND credit = 0) OR (credit > 0 AND debit = 0)",
            name="entry_line_single_side_check",
        ),
    )

    op.create_table(
        "sequence_number",
        sa.Column("organization_id", sa.String(), sa.ForeignKey("organization.id"), nullable=False),
        sa.Column("fiscal_year_id", sa.String(), sa.ForeignKey("fiscal_year.id"), nullable=False),
        sa.Column("journal_id", sa.String(), sa.ForeignKey("journal.id"), nullable=False),
        sa.Column("next_value", sa.BigInteger(), nullable=False, server_default="1"),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("organization_id", "fiscal_year_id", "journal_id", name="sequence_number_pkey"),
    )

    op.create_table(
        "compliance_export",
        *_tenant_columns(),
        sa.Column("fiscal_year_id", sa.String(), sa.ForeignKey("fiscal_year.id"), nullable=False, index=True),
        sa.Column("format", sa.String(), nullable=False, server_default="FEC"),
        sa.Column("checksum", sa.String(64), nullable=False),
        sa.Column("row_count", sa.Integer(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        _created_at(),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now(), index=True),
        sa.Column("organization_id", sa.String(), sa.ForeignKey("organization.id"), nullable=False),
        sa.Column("user_id", sa.String(), nullable=True, index=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("entity", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=True),
    )
    op.create_index("idx_audit_org_created", "audit_log", ["organization_id", "created_at"])
    op.create_index("idx_audit_entity", "audit_log", ["entity", "entity_id"])

    if op.get_bind().dialect.name == "postgresql":
        for statement in rls_statements(TENANT_TABLES):
            op.execute(statement)


def downgrade() -> None:
    for table in reversed(
        (
            "organization",
            "fiscal_year",
            "journal",
            "account",
            "project",
            "bank_account",
            "bank_statement",
            "entry",
            "entry_line",
            "sequence_number",
            "compliance_export",
            "audit_log",
        )
    ):
        op.drop_table(table)
