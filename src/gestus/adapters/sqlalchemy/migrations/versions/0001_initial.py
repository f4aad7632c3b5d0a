"""Create user and gesture attempt tables.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

from gestus.adapters.sqlalchemy.mappings import JSONPayload, UTCDateTime

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column(
            "role",
            sa.Enum("ADMIN", "TEACHER", "STUDENT", "PARENT", name="userrole", native_enum=False),
            nullable=False,
        ),
        sa.Column("external_uid", sa.String(128), nullable=True),
        sa.Column("parent_id", sa.Integer(), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=True),
        sa.ForeignKeyConstraint(
            ["parent_id"],
            ["user_account.id"],
            name="fk_user_account_parent_id_user_account",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_user_account"),
        sa.UniqueConstraint("email", name="uq_user_account_email"),
        sa.UniqueConstraint("external_uid", name="uq_user_account_external_uid"),
    )
    op.create_table(
        "gesture_attempt",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("external_identity", sa.String(128), nullable=False),
        sa.Column("internal_user_id", sa.Integer(), nullable=True),
        sa.Column("gesture_id", sa.String(128), nullable=False),
        sa.Column("attempt_id", sa.String(128), nullable=False),
        sa.Column("gesture_name", sa.String(255), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("timestamp", UTCDateTime(), nullable=False),
        sa.Column("raw_payload", JSONPayload(), nullable=True),
        sa.Column("created_at", UTCDateTime(), nullable=False),
        sa.Column("updated_at", UTCDateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ["internal_user_id"],
            ["user_account.id"],
            name="fk_gesture_attempt_internal_user_id_user_account",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_gesture_attempt"),
        sa.UniqueConstraint(
            "external_identity",
            "gesture_id",
            "attempt_id",
            name="uq_gesture_attempt_natural_key",
        ),
    )
    op.create_index(
        "ix_gesture_attempt_internal_user_id", "gesture_attempt", ["internal_user_id"]
    )
    op.create_index("ix_gesture_attempt_timestamp", "gesture_attempt", ["timestamp"])


def downgrade() -> None:
    op.drop_index("ix_gesture_attempt_timestamp", table_name="gesture_attempt")
    op.drop_index("ix_gesture_attempt_internal_user_id", table_name="gesture_attempt")
    op.drop_table("gesture_attempt")
    op.drop_table("user_account")
