"""add materialization horizon and split origin"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa

revision = "0004_add_split_origin"
down_revision = "0003_add_task_exceptions"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("tasks", sa.Column("materialized_until", sa.DateTime(), nullable=True))
    op.add_column("tasks", sa.Column("split_from_id", sa.Integer(), nullable=True))
    op.add_column("tasks", sa.Column("split_date", sa.Date(), nullable=True))
    op.create_unique_constraint(
        "uq_tasks_split_origin", "tasks", ["split_from_id", "split_date"]
    )


def downgrade() -> None:
    op.drop_constraint("uq_tasks_split_origin", "tasks", type_="unique")
    op.drop_column("tasks", "split_date")
    op.drop_column("tasks", "split_from_id")
    op.drop_column("tasks", "materialized_until")
