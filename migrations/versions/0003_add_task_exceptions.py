"""add skipped-occurrence table"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0003_add_task_exceptions"
down_revision = "0002_add_recurrence"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "task_exceptions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "master_id",
            sa.Integer(),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sequence_index", sa.Integer(), nullable=False),
        sa.Column("exception_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("master_id", "sequence_index", name="uq_task_exceptions_master_sequence"),
    )
    op.create_index("ix_task_exceptions_master_id", "task_exceptions", ["master_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_task_exceptions_master_id", table_name="task_exceptions")
    op.drop_table("task_exceptions")
