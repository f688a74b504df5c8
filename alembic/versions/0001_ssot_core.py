"""ssot core: budgets, templates, contracts, idempotency ledger, audit trail

Revision ID: 0001_ssot_core
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_ssot_core"
down_revision = None
branch_labels = None
depends_on = None


def _uuid():
    return postgresql.UUID(as_uuid=True)


def _ts(name: str, nullable: bool = False):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable, server_default=sa.text("now()"))


def upgrade():
    # ---- templates -------------------------------------------------------
    op.create_table(
        "budget_templates",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("project_id", _uuid(), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )

    op.create_table(
        "budget_template_lines",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column(
            "template_id", _uuid(),
            sa.ForeignKey("budget_templates.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("category_id", _uuid(), nullable=True),
        sa.Column("subcategory", sa.String(length=255), nullable=True),
        sa.Column("guidance", sa.Text(), nullable=True),
        sa.Column("required", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("min_lines", sa.Integer(), nullable=True),
        sa.Column("max_lines", sa.Integer(), nullable=True),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _ts("created_at"),
    )
    op.create_index("ix_budget_template_line_template", "budget_template_lines", ["template_id"])

    op.create_table(
        "contract_templates_ssot",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
    )

    # ---- budgets ---------------------------------------------------------
    op.create_table(
        "partner_budgets_ssot",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("project_id", _uuid(), nullable=False),
        sa.Column("partner_id", _uuid(), nullable=False),
        sa.Column(
            "template_id", _uuid(),
            sa.ForeignKey("budget_templates.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("ceiling_total", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("rules_json", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("ceiling_total >= 0", name="ck_budget_ceiling_nonnegative"),
    )
    op.create_index("ix_budget_project_partner", "partner_budgets_ssot", ["project_id", "partner_id"])
    op.create_index("ix_budget_status", "partner_budgets_ssot", ["status"])

    op.create_table(
        "partner_budget_lines_ssot",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column(
            "budget_id", _uuid(),
            sa.ForeignKey("partner_budgets_ssot.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "template_line_id", _uuid(),
            sa.ForeignKey("budget_template_lines.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("category_id", _uuid(), nullable=True),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("unit", sa.String(length=32), nullable=False),
        sa.Column("qty", sa.Numeric(14, 4), nullable=False),
        sa.Column("unit_cost", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("period_from", sa.Date(), nullable=True),
        sa.Column("period_to", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        _ts("created_at"),
        sa.CheckConstraint("qty >= 0", name="ck_budget_line_qty_nonnegative"),
        sa.CheckConstraint("unit_cost >= 0", name="ck_budget_line_cost_nonnegative"),
    )
    op.create_index("ix_budget_line_budget", "partner_budget_lines_ssot", ["budget_id"])

    # ---- contracts -------------------------------------------------------
    op.create_table(
        "contracts_ssot",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("project_id", _uuid(), nullable=False),
        sa.Column("partner_id", _uuid(), nullable=False),
        sa.Column(
            "budget_id", _uuid(),
            sa.ForeignKey("partner_budgets_ssot.id", ondelete="RESTRICT"), nullable=False,
        ),
        sa.Column(
            "template_id", _uuid(),
            sa.ForeignKey("contract_templates_ssot.id", ondelete="RESTRICT"), nullable=False,
        ),
        sa.Column("number", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("state", sa.String(length=32), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("generated_docx_key", sa.String(length=512), nullable=True),
        sa.Column("approved_docx_key", sa.String(length=512), nullable=True),
        sa.Column("signed_pdf_key", sa.String(length=512), nullable=True),
        sa.Column("approval_provider", sa.String(length=64), nullable=True),
        sa.Column("approval_ref", sa.String(length=255), nullable=True),
        sa.Column("signing_envelope_id", sa.String(length=255), nullable=True),
        sa.Column("substatus_json", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("metadata_json", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("number", name="uq_contract_number"),
    )
    op.create_index("ix_contract_project_partner", "contracts_ssot", ["project_id", "partner_id"])
    op.create_index("ix_contract_state", "contracts_ssot", ["state"])
    op.create_index("ix_contract_budget", "contracts_ssot", ["budget_id"])

    # ---- idempotency ledger ----------------------------------------------
    op.create_table(
        "action_idempotency",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        sa.Column("idempotency_key", sa.String(length=128), nullable=False),
        sa.Column("action_key", sa.String(length=96), nullable=False),
        sa.Column("actor_user_id", sa.String(length=128), nullable=False),
        sa.Column("request_hash", sa.String(length=128), nullable=False),
        sa.Column("response_json", postgresql.JSONB, nullable=True),
        _ts("created_at"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("idempotency_key", name="uq_action_idempotency_key"),
    )
    op.create_index("ix_action_idempotency_actor", "action_idempotency", ["actor_user_id", "action_key"])

    # ---- audit trail -----------------------------------------------------
    op.create_table(
        "audit_logs",
        sa.Column("id", _uuid(), primary_key=True, nullable=False),
        _ts("created_at"),
        sa.Column("actor_id", sa.String(length=128), nullable=True),
        sa.Column("action", sa.String(length=96), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=False),
        sa.Column("before_state", postgresql.JSONB, nullable=True),
        sa.Column("after_state", postgresql.JSONB, nullable=True),
        sa.Column("payload_json", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=512), nullable=True),
        sa.Column("request_id", sa.String(length=128), nullable=True),
    )
    op.create_index("ix_audit_entity", "audit_logs", ["entity_type", "entity_id"])
    op.create_index("ix_audit_actor", "audit_logs", ["actor_id"])
    op.create_index("ix_audit_action", "audit_logs", ["action"])
    op.create_index("ix_audit_created", "audit_logs", ["created_at"])

    # append-only audit trail
    op.execute(
        """
        CREATE OR REPLACE FUNCTION audit_logs_block_mutation() RETURNS trigger AS $$
        BEGIN
          RAISE EXCEPTION 'audit_logs is append-only';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_audit_logs_no_update
        BEFORE UPDATE OR DELETE ON audit_logs
        FOR EACH ROW EXECUTE FUNCTION audit_logs_block_mutation();
        """
    )


def downgrade():
    op.execute("DROP TRIGGER IF EXISTS trg_audit_logs_no_update ON audit_logs;")
    op.execute("DROP FUNCTION IF EXISTS audit_logs_block_mutation();")

    op.drop_index("ix_audit_created", table_name="audit_logs")
    op.drop_index("ix_audit_action", table_name="audit_logs")
    op.drop_index("ix_audit_actor", table_name="audit_logs")
    op.drop_index("ix_audit_entity", table_name="audit_logs")
    op.drop_table("audit_logs")

    op.drop_index("ix_action_idempotency_actor", table_name="action_idempotency")
    op.drop_table("action_idempotency")

    op.drop_index("ix_contract_budget", table_name="contracts_ssot")
    op.drop_index("ix_contract_state", table_name="contracts_ssot")
    op.drop_index("ix_contract_project_partner", table_name="contracts_ssot")
    op.drop_table("contracts_ssot")

    op.drop_index("ix_budget_line_budget", table_name="partner_budget_lines_ssot")
    op.drop_table("partner_budget_lines_ssot")

    op.drop_index("ix_budget_status", table_name="partner_budgets_ssot")
    op.drop_index("ix_budget_project_partner", table_name="partner_budgets_ssot")
    op.drop_table("partner_budgets_ssot")

    op.drop_table("contract_templates_ssot")
    op.drop_index("ix_budget_template_line_template", table_name="budget_template_lines")
    op.drop_table("budget_template_lines")
    op.drop_table("budget_templates")
