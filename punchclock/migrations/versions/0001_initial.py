"""Initial attendance schema: user states and entry ledger

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-01 00:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "user_states",
        sa.Column("uid", sa.Integer(), primary_key=True, autoincrement=False, nullable=False),
        sa.Column("state", sa.String(length=1), nullable=False, server_default=sa.text("'O'")),
        sa.Column("since_unix_s", sa.BigInteger(), nullable=False),
        sa.CheckConstraint("state IN ('I', 'O')", name="ck_user_states_state"),
    )
    op.create_index("ix_user_states_state", "user_states", ["state"], unique=False)

    op.create_table(
        "entries",
        sa.Column("eid", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("uid", sa.Integer(), nullable=False),
        sa.Column("from_unix_s", sa.BigInteger(), nullable=False),
        sa.Column("to_unix_s", sa.BigInteger(), nullable=False),
        sa.Column(
            "valid",
            sa.Boolean(create_constraint=True, name="ck_entries_valid"),
            nullable=False,
            server_default=sa.true(),
        ),
        sa.ForeignKeyConstraint(["uid"], ["user_states.uid"], ondelete="CASCADE"),
    )
    op.create_index("ix_entries_uid_from", "entries", ["uid", "from_unix_s"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_entries_uid_from", table_name="entries")
    op.drop_table("entries")
    op.drop_index("ix_user_states_state", table_name="user_states")
    op.drop_table("user_states")
