"""Add spawn timestamp used to detect pid reuse."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    # SQLite refuses ALTER TABLE ADD COLUMN with a non-constant default.
    with op.batch_alter_table("delegate_command", recreate="always") as batch_op:
        batch_op.add_column(
            sa.Column(
                "created_at",
                sa.DateTime(timezone=True),
                nullable=False,
                server_default=sa.text("CURRENT_TIMESTAMP"),
            ),
        )


def downgrade() -> None:
    with op.batch_alter_table("delegate_command") as batch_op:
        batch_op.drop_column("created_at")
