"""create conversation tables

Revision ID: 202610170001
Revises:
Create Date: 2026-10-17 00:00:00
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "202610170001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "agent_profiles",
        sa.Column("agent_id", sa.String(length=64), primary_key=True),
        sa.Column("assistant_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("document_type", sa.String(length=128), nullable=False),
        sa.Column("template_content", sa.Text(), nullable=False),
        sa.Column(
            "placeholder_fields",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column("sla_hours", sa.Integer(), server_default=sa.text("4"), nullable=False),
        sa.Column("active", sa.Boolean(), server_default=sa.text("true"), nullable=False),
        sa.Column("conversations_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("success_rate", sa.Numeric(5, 2), server_default=sa.text("0"), nullable=False),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "agent_conversations",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("thread_id", sa.String(length=128), nullable=False),
        sa.Column("agent_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), server_default=sa.text("'active'"), nullable=False),
        sa.Column("last_message", sa.Text(), nullable=True),
        sa.Column("run_status", sa.String(length=32), nullable=True),
        sa.Column("run_id", sa.String(length=128), nullable=True),
        sa.Column(
            "collected_data",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column(
            "placeholder_mapping",
            postgresql.JSONB(astext_type=sa.Text()),
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("user_contact", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("thread_id", "agent_id", name="uq_agent_conversations_thread_agent"),
    )
    op.create_index(
        "ix_agent_conversations_updated_at",
        "agent_conversations",
        ["thread_id", "agent_id", "updated_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_agent_conversations_updated_at", table_name="agent_conversations")
    op.drop_table("agent_conversations")
    op.drop_table("agent_profiles")
