"""Create blockchain_records, user_points and points_transactions tables

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19

Hash-chained collection ledger plus per-user reward state and its
append-only transaction log.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import mssql


revision: str = "20261019_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "blockchain_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("hash", sa.String(64), nullable=False),
        sa.Column("previous_hash", sa.String(64), nullable=False),
        sa.Column("collection_id", sa.String(64), nullable=False),
        sa.Column("event_id", sa.String(64), nullable=False),
        sa.Column("stage", sa.String(50), nullable=False),
        sa.Column("weight", sa.Float(), nullable=False),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("responsible_person", sa.String(200), nullable=False),
        sa.Column("photo_hash", sa.String(128), nullable=True),
        sa.Column("nonce", sa.Integer(), nullable=False),
        sa.Column(
            "timestamp",
            sa.DateTime().with_variant(mssql.DATETIME2(precision=6), "mssql"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_blockchain_records"),
        sa.UniqueConstraint("previous_hash", name="uq_blockchain_records_previous_hash"),
    )
    op.create_index("ix_blockchain_records_hash", "blockchain_records", ["hash"], unique=True)
    op.create_index("ix_blockchain_records_stage", "blockchain_records", ["stage"])
    op.create_index(
        "ix_blockchain_records_collection_event",
        "blockchain_records",
        ["collection_id", "event_id"],
    )

    op.create_table(
        "user_points",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("total_points", sa.Integer(), server_default="0", nullable=False),
        sa.Column("level", sa.String(50), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("user_id", name="pk_user_points"),
    )

    op.create_table(
        "points_transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("collection_id", sa.String(64), nullable=True),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("material_type", sa.String(50), nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_points_transactions"),
        sa.UniqueConstraint("collection_id", name="uq_points_transactions_collection_id"),
    )
    op.create_index("ix_points_transactions_user_id", "points_transactions", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_points_transactions_user_id", table_name="points_transactions")
    op.drop_table("points_transactions")
    op.drop_table("user_points")
    op.drop_index("ix_blockchain_records_collection_event", table_name="blockchain_records")
    op.drop_index("ix_blockchain_records_stage", table_name="blockchain_records")
    op.drop_index("ix_blockchain_records_hash", table_name="blockchain_records")
    op.drop_table("blockchain_records")
