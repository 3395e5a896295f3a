"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2025-10-02

"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "businesses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("profile", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_businesses_name", "businesses", ["name"], unique=False)

    op.create_table(
        "phone_numbers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("e164", sa.String(length=32), nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ["business_id"],
            ["businesses.id"],
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_phone_numbers_e164", "phone_numbers", ["e164"], unique=True)
    op.create_index("ix_phone_numbers_business_id", "phone_numbers", ["business_id"], unique=False)

    op.create_table(
        "leads",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("business_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("call_sid", sa.String(length=64), nullable=True),
        sa.Column("caller", sa.String(length=32), nullable=True),
        sa.Column("outcome", sa.String(length=16), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("vehicle_year", sa.String(length=8), nullable=True),
        sa.Column("vehicle_make", sa.String(length=64), nullable=True),
        sa.Column("vehicle_model", sa.String(length=128), nullable=True),
        sa.Column("service_type", sa.String(length=128), nullable=True),
        sa.Column("postal_code", sa.String(length=16), nullable=True),
        sa.Column("recording_url", sa.Text(), nullable=True),
        sa.Column("raw_line", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ["business_id"],
            ["businesses.id"],
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_leads_business_id", "leads", ["business_id"], unique=False)
    op.create_index("ix_leads_call_sid", "leads", ["call_sid"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_leads_call_sid", table_name="leads")
    op.drop_index("ix_leads_business_id", table_name="leads")
    op.drop_table("leads")

    op.drop_index("ix_phone_numbers_business_id", table_name="phone_numbers")
    op.drop_index("ix_phone_numbers_e164", table_name="phone_numbers")
    op.drop_table("phone_numbers")

    op.drop_index("ix_businesses_name", table_name="businesses")
    op.drop_table("businesses")
