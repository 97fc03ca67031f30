"""init

Revision ID: 0001_init
Revises: 
Create Date: 2026-10-19 09:00:00.000000
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "aws_accounts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.String(), nullable=False, unique=True),
        sa.Column("account_name", sa.String(), nullable=False),
        sa.Column("access_key_id", sa.String(), nullable=False),
        sa.Column("secret_access_key", sa.String(), nullable=False),
        sa.Column("session_token", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "aws_regions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("aws_accounts.id"), nullable=False),
        sa.Column("region", sa.String(), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("account_id", "region", name="uq_aws_regions_account_region"),
    )
    op.create_index("ix_aws_regions_account_enabled", "aws_regions", ["account_id", "enabled"])

    op.create_table(
        "asset_findings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("aws_accounts.id"), nullable=False),
        # Region code copied from the scan, not a reference to aws_regions.
        sa.Column("region", sa.String(), nullable=False),
        sa.Column("resource_id", sa.String(), nullable=False),
        sa.Column("resource_type", sa.String(), nullable=False),
        sa.Column("resource_name", sa.String(), nullable=True),
        sa.Column("service", sa.String(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("finding", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("remediation", sa.Text(), nullable=False),
        sa.Column("details_json", postgresql.JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint(
            "severity IN ('HIGH', 'MEDIUM', 'LOW')",
            name="ck_asset_findings_severity",
        ),
    )
    op.create_index(
        "ix_asset_findings_account_created", "asset_findings", ["account_id", "created_at"]
    )
    op.create_index("ix_asset_findings_resource_id", "asset_findings", ["resource_id"])


def downgrade() -> None:
    op.drop_index("ix_asset_findings_resource_id", table_name="asset_findings")
    op.drop_index("ix_asset_findings_account_created", table_name="asset_findings")
    op.drop_table("asset_findings")
    op.drop_index("ix_aws_regions_account_enabled", table_name="aws_regions")
    op.drop_table("aws_regions")
    op.drop_table("aws_accounts")
