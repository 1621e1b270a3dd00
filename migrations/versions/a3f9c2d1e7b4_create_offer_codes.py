"""create offer_codes table

Revision ID: a3f9c2d1e7b4
Revises:
Create Date: 2025-03-01 10:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "a3f9c2d1e7b4"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _table_exists(table_name: str) -> bool:
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    return table_name in inspector.get_table_names()


def upgrade() -> None:
    # init_db 可能已通过 create_all 建表
    if _table_exists("offer_codes"):
        return

    op.create_table(
        "offer_codes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("claimed_by", sa.String(length=320), nullable=True),
        sa.Column("claimed_at", sa.DateTime(), nullable=True),
        sa.Column("is_redeemed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("batch_id", sa.String(length=36), nullable=True),
    )
    op.create_index("ix_offer_codes_code", "offer_codes", ["code"], unique=True)
    op.create_index("ix_offer_codes_expires_at", "offer_codes", ["expires_at"])
    op.create_index("ix_offer_codes_claimed_by", "offer_codes", ["claimed_by"])
    op.create_index("ix_offer_codes_batch_id", "offer_codes", ["batch_id"])
    op.create_index("ix_offer_codes_claimable", "offer_codes", ["is_redeemed", "expires_at"])


def downgrade() -> None:
    op.drop_table("offer_codes")
