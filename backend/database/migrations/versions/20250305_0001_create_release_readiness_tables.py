"""create release readiness tables

Revision ID: 20250305_0001
Revises:
Create Date: 2025-03-05 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20250305_0001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    tables = set(inspector.get_table_names())

    if "release_checklist_items" not in tables:
        op.create_table(
            "release_checklist_items",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("public_id", sa.String(length=36), nullable=False),
            sa.Column("slug", sa.String(length=120), nullable=False),
            sa.Column("category", sa.String(length=64), nullable=False, server_default="quality"),
            sa.Column("title", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("auto_evaluated", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("weight", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("default_owner_email", sa.String(length=160), nullable=True),
            sa.Column("success_criteria", sa.Text(), nullable=False, server_default="{}"),
            *_timestamps(),
            sa.UniqueConstraint("slug", name="uq_release_checklist_items_slug"),
            sa.UniqueConstraint("public_id", name="uq_release_checklist_items_public_id"),
            sa.CheckConstraint("weight >= 1", name="ck_release_checklist_items_weight"),
        )

    if "release_runs" not in tables:
        op.create_table(
            "release_runs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("public_id", sa.String(length=36), nullable=False),
            sa.Column("version_tag", sa.String(length=64), nullable=False),
            sa.Column("environment", sa.String(length=64), nullable=False, server_default="production"),
            sa.Column("status", sa.String(length=32), nullable=False, server_default="scheduled"),
            sa.Column("initiated_by_email", sa.String(length=160), nullable=False),
            sa.Column("initiated_by_name", sa.String(length=160), nullable=True),
            sa.Column("scheduled_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
            sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("change_window_start", sa.DateTime(timezone=True), nullable=True),
            sa.Column("change_window_end", sa.DateTime(timezone=True), nullable=True),
            sa.Column("summary_notes", sa.Text(), nullable=True),
            sa.Column("checklist_snapshot", sa.Text(), nullable=False, server_default="[]"),
            sa.Column("metadata", sa.Text(), nullable=False, server_default="{}"),
            *_timestamps(),
            sa.UniqueConstraint("public_id", name="uq_release_runs_public_id"),
        )

    if "release_gate_results" not in tables:
        op.create_table(
            "release_gate_results",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("public_id", sa.String(length=36), nullable=False),
            sa.Column("run_id", sa.Integer(), nullable=False),
            sa.Column("checklist_item_id", sa.Integer(), nullable=True),
            sa.Column("gate_key", sa.String(length=160), nullable=False),
            sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
            sa.Column("owner_email", sa.String(length=160), nullable=True),
            sa.Column("metrics", sa.Text(), nullable=False, server_default="{}"),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("evidence_url", sa.String(length=500), nullable=True),
            sa.Column("last_evaluated_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["run_id"], ["release_runs.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["checklist_item_id"], ["release_checklist_items.id"], ondelete="SET NULL"),
            sa.UniqueConstraint("run_id", "gate_key", name="uq_release_gate_results_run_gate"),
            sa.UniqueConstraint("public_id", name="uq_release_gate_results_public_id"),
        )

    wanted_indexes = {
        "release_checklist_items": [
            ("ix_release_checklist_items_id", ["id"]),
            ("ix_release_checklist_items_category", ["category"]),
        ],
        "release_runs": [
            ("ix_release_runs_id", ["id"]),
            ("ix_release_runs_environment_status", ["environment", "status"]),
            ("ix_release_runs_version_tag", ["version_tag"]),
            ("ix_release_runs_scheduled_at", ["scheduled_at"]),
        ],
        "release_gate_results": [
            ("ix_release_gate_results_id", ["id"]),
            ("ix_release_gate_results_run_status", ["run_id", "status"]),
        ],
    }
    inspector = sa.inspect(bind)
    for table, indexes in wanted_indexes.items():
        existing = {idx["name"] for idx in inspector.get_indexes(table)}
        for name, columns in indexes:
            if name not in existing:
                op.create_index(name, table, columns, unique=False)


def downgrade() -> None:
    op.drop_table("release_gate_results")
    op.drop_table("release_runs")
    op.drop_table("release_checklist_items")
