"""Create delegate_command registry table."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

_INDEXES = {
    "ix_delegate_command_pid": ["pid"],
    "ix_delegate_command_ongoing": ["ongoing"],
    "ix_delegate_command_group_num": ["group_num"],
}


def upgrade() -> None:
    inspector = sa.inspect(op.get_bind())
    # Registries written before migrations existed already hold the table, without a version row.
    if not inspector.has_table("delegate_command"):
        op.create_table(
            "delegate_command",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column("pid", sa.Integer(), nullable=False),
            sa.Column("command", sa.Text(), nullable=False),
            sa.Column("stdout_path", sa.Text(), nullable=False),
            sa.Column("stdin_path", sa.Text(), nullable=False),
            sa.Column("stderr_path", sa.Text(), nullable=False),
            sa.Column("ongoing", sa.Integer(), nullable=False, server_default=sa.text("1")),
            sa.Column("group_num", sa.Integer(), nullable=True),
        )
        existing_indexes: set[str] = set()
    else:
        existing_indexes = {index["name"] for index in inspector.get_indexes("delegate_command")}

    for name, columns in _INDEXES.items():
        if name not in existing_indexes:
            op.create_index(name, "delegate_command", columns)


def downgrade() -> None:
    for name in reversed(_INDEXES):
        op.drop_index(name, table_name="delegate_command")
    op.drop_table("delegate_command")
