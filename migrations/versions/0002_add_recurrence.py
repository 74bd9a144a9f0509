"""add series role, recurrence rule and instance linkage"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0002_add_recurrence"
down_revision = "0001_create_tasks"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "tasks",
        sa.Column("series_role", sa.String(length=20), nullable=False, server_default="standalone"),
    )
    op.add_column("tasks", sa.Column("recurrence_frequency", sa.String(length=20), nullable=True))
    op.add_column(
        "tasks",
        sa.Column("recurrence_interval", sa.Integer(), nullable=False, server_default="1"),
    )
    op.add_column(
        "tasks",
        sa.Column("recurrence_end_kind", sa.String(length=20), nullable=False, server_default="never"),
    )
    op.add_column("tasks", sa.Column("recurrence_count", sa.Integer(), nullable=True))
    op.add_column("tasks", sa.Column("recurrence_end_date", sa.Date(), nullable=True))
    op.add_column("tasks", sa.Column("parent_task_id", sa.Integer(), nullable=True))
    op.add_column("tasks", sa.Column("sequence_index", sa.Integer(), nullable=True))
    op.add_column(
        "tasks",
        sa.Column("is_override", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    )
    op.add_column("tasks", sa.Column("override_fields", sa.Text(), nullable=False, server_default=""))

    op.create_index("ix_tasks_series_role", "tasks", ["series_role"], unique=False)
    op.create_index("ix_tasks_parent_task_id", "tasks", ["parent_task_id"], unique=False)
    op.create_unique_constraint(
        "uq_tasks_parent_sequence", "tasks", ["parent_task_id", "sequence_index"]
    )
    op.create_check_constraint(
        "ck_tasks_instance_parent",
        "tasks",
        "(series_role = 'instance' AND parent_task_id IS NOT NULL AND sequence_index IS NOT NULL)"
        " OR (series_role <> 'instance' AND parent_task_id IS NULL)",
    )
    op.create_check_constraint(
        "ck_tasks_master_rule",
        "tasks",
        "(series_role = 'master' AND recurrence_frequency IS NOT NULL)"
        " OR (series_role <> 'master' AND recurrence_frequency IS NULL)",
    )


def downgrade() -> None:
    op.drop_constraint("ck_tasks_master_rule", "tasks", type_="check")
    op.drop_constraint("ck_tasks_instance_parent", "tasks", type_="check")
    op.drop_constraint("uq_tasks_parent_sequence", "tasks", type_="unique")
    op.drop_index("ix_tasks_parent_task_id", table_name="tasks")
    op.drop_index("ix_tasks_series_role", table_name="tasks")
    op.drop_column("tasks", "override_fields")
    op.drop_column("tasks", "is_override")
    op.drop_column("tasks", "sequence_index")
    op.drop_column("tasks", "parent_task_id")
    op.drop_column("tasks", "recurrence_end_date")
    op.drop_column("tasks", "recurrence_count")
    op.drop_column("tasks", "recurrence_end_kind")
    op.drop_column("tasks", "recurrence_interval")
    op.drop_column("tasks", "recurrence_frequency")
    op.drop_column("tasks", "series_role")
