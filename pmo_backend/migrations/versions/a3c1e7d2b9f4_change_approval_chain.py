"""change approval chain + delegations + audit

Revision ID: a3c1e7d2b9f4
Revises:
Create Date: 2026-09-14 10:12:03.481220
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "a3c1e7d2b9f4"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(bind, name: str, schema: str | None = None) -> bool:
    insp = sa.inspect(bind)
    return name in insp.get_table_names(schema=schema)


def _index_exists(bind, table: str, name: str, schema: str | None = None) -> bool:
    insp = sa.inspect(bind)
    for ix in insp.get_indexes(table_name=table, schema=schema):
        if ix.get("name") in {name, op.f(name)}:
            return True
    return False


def _ensure_index(bind, table: str, column: str) -> None:
    name = f"ix_{table}_{column}"
    if not _index_exists(bind, table, name):
        op.create_index(op.f(name), table, [column], unique=False)


def upgrade() -> None:
    """Create approval tables if they don't already exist (change_requests may predate this)."""
    bind = op.get_bind()
    ts = sa.DateTime(timezone=True)

    # ---- CHANGE REQUESTS (host; usually owned by the change module) ----
    if not _table_exists(bind, "change_requests"):
        op.create_table(
            "change_requests",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("project_id", sa.String(length=64), nullable=False),
            sa.Column("title", sa.String(length=500), nullable=False),
            sa.Column("artifact_id", sa.String(length=64), nullable=True),
            sa.Column("approval_chain_id", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=32), nullable=True),
            sa.Column("delivery_status", sa.String(length=32), nullable=True),
            sa.Column("decision_status", sa.String(length=32), nullable=False, server_default="none"),
            sa.Column("decision_rationale", sa.Text(), nullable=True),
            sa.Column("decision_by", sa.String(length=64), nullable=True),
            sa.Column("decision_at", ts, nullable=True),
            sa.Column("decision_role", sa.String(length=32), nullable=True),
            sa.Column("approver_id", sa.String(length=64), nullable=True),
            sa.Column("approval_date", ts, nullable=True),
            sa.Column("created_at", ts, nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", ts, nullable=True),
            sa.PrimaryKeyConstraint("id", name=op.f("change_requests_pkey")),
        )
    _ensure_index(bind, "change_requests", "project_id")
    _ensure_index(bind, "change_requests", "artifact_id")

    # ---- CHAINS / STEPS ----
    if not _table_exists(bind, "approval_chains"):
        op.create_table(
            "approval_chains",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("artifact_id", sa.String(length=64), nullable=False),
            sa.Column("created_at", ts, nullable=False, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id", name=op.f("approval_chains_pkey")),
        )
    _ensure_index(bind, "approval_chains", "artifact_id")

    if not _table_exists(bind, "approval_steps"):
        op.create_table(
            "approval_steps",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("chain_id", sa.Integer(), nullable=False),
            sa.Column("step_order", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.ForeignKeyConstraint(["chain_id"], ["approval_chains.id"], name=op.f("approval_steps_chain_id_fkey")),
            sa.PrimaryKeyConstraint("id", name=op.f("approval_steps_pkey")),
            sa.UniqueConstraint("chain_id", "step_order", name="uq_approval_steps_chain_order"),
        )
    _ensure_index(bind, "approval_steps", "chain_id")

    # ---- APPROVER DIRECTORY ----
    if not _table_exists(bind, "organisation_approvers"):
        op.create_table(
            "organisation_approvers",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("organisation_id", sa.String(length=64), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=True),
            sa.Column("label", sa.String(length=255), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.PrimaryKeyConstraint("id", name=op.f("organisation_approvers_pkey")),
        )
    _ensure_index(bind, "organisation_approvers", "organisation_id")
    _ensure_index(bind, "organisation_approvers", "user_id")

    if not _table_exists(bind, "step_approvers"):
        op.create_table(
            "step_approvers",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("step_id", sa.Integer(), nullable=False),
            sa.Column("approver_type", sa.String(length=16), nullable=False, server_default="user"),
            sa.Column("approver_id", sa.Integer(), nullable=True),
            sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.ForeignKeyConstraint(["step_id"], ["approval_steps.id"], name=op.f("step_approvers_step_id_fkey")),
            sa.ForeignKeyConstraint(["approver_id"], ["organisation_approvers.id"],
                                    name=op.f("step_approvers_approver_id_fkey")),
            sa.PrimaryKeyConstraint("id", name=op.f("step_approvers_pkey")),
        )
    _ensure_index(bind, "step_approvers", "step_id")

    # ---- DECISIONS (one row per chain/step/approver) ----
    if not _table_exists(bind, "approval_decisions"):
        op.create_table(
            "approval_decisions",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("chain_id", sa.Integer(), nullable=False),
            sa.Column("step_id", sa.Integer(), nullable=False),
            sa.Column("approver_user_id", sa.String(length=64), nullable=False),
            sa.Column("actor_user_id", sa.String(length=64), nullable=False),
            sa.Column("decision", sa.String(length=16), nullable=False),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("created_at", ts, nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", ts, nullable=False, server_default=sa.func.now()),
            sa.ForeignKeyConstraint(["chain_id"], ["approval_chains.id"], name=op.f("approval_decisions_chain_id_fkey")),
            sa.ForeignKeyConstraint(["step_id"], ["approval_steps.id"], name=op.f("approval_decisions_step_id_fkey")),
            sa.PrimaryKeyConstraint("id", name=op.f("approval_decisions_pkey")),
            sa.UniqueConstraint("chain_id", "step_id", "approver_user_id", name="uq_approval_decisions_key"),
        )
    _ensure_index(bind, "approval_decisions", "chain_id")
    _ensure_index(bind, "approval_decisions", "step_id")

    # ---- DELEGATIONS (holiday cover) ----
    if not _table_exists(bind, "approver_delegations"):
        op.create_table(
            "approver_delegations",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("organisation_id", sa.String(length=64), nullable=False),
            sa.Column("approver_user_id", sa.String(length=64), nullable=False),
            sa.Column("delegate_user_id", sa.String(length=64), nullable=False),
            sa.Column("starts_at", ts, nullable=True),
            sa.Column("ends_at", ts, nullable=True),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_by", sa.String(length=64), nullable=True),
            sa.Column("created_at", ts, nullable=False, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id", name=op.f("approver_delegations_pkey")),
        )
    for col in ("organisation_id", "approver_user_id", "delegate_user_id"):
        _ensure_index(bind, "approver_delegations", col)

    # ---- AUDIT LOG ----
    if not _table_exists(bind, "audit_log"):
        op.create_table(
            "audit_log",
            sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
            sa.Column("action", sa.String(length=128), nullable=True),
            sa.Column("project_id", sa.String(length=64), nullable=True),
            sa.Column("change_request_id", sa.Integer(), nullable=True),
            sa.Column("actor", sa.String(length=255), nullable=True),
            sa.Column("actor_role", sa.String(length=32), nullable=True),
            sa.Column("details", sa.JSON(), nullable=True),
            sa.Column("created_at", ts, nullable=False, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id", name=op.f("audit_log_pkey")),
        )
    for col in ("action", "project_id", "change_request_id"):
        _ensure_index(bind, "audit_log", col)


def downgrade() -> None:
    """Drop the approval tables; change_requests is left alone."""
    for table in ("audit_log", "approver_delegations", "approval_decisions",
                  "step_approvers", "organisation_approvers", "approval_steps", "approval_chains"):
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
