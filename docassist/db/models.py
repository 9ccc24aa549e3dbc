from __future__ import annotations

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB

metadata = MetaData()

agent_profiles = Table(
    "agent_profiles",
    metadata,
    Column("agent_id", String(length=64), primary_key=True),
    Column("assistant_id", String(length=128), nullable=False),
    Column("name", String(length=255), nullable=True),
    Column("document_type", String(length=128), nullable=False),
    Column("template_content", Text, nullable=False),
    Column("placeholder_fields", JSONB(astext_type=Text()), nullable=False, server_default=text("'[]'::jsonb")),
    Column("sla_hours", Integer, nullable=False, server_default=text("4")),
    Column("active", Boolean, nullable=False, server_default=text("true")),
    Column("conversations_count", Integer, nullable=False, server_default=text("0")),
    Column("success_rate", Numeric(5, 2), nullable=False, server_default=text("0")),
    Column("last_activity_at", DateTime(timezone=True), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
)

agent_conversations = Table(
    "agent_conversations",
    metadata,
    Column("id", BigInteger, primary_key=True, autoincrement=True),
    Column("thread_id", String(length=128), nullable=False),
    Column("agent_id", String(length=64), nullable=False),
    Column("status", String(length=32), nullable=False, server_default=text("'active'")),
    Column("last_message", Text, nullable=True),
    Column("run_status", String(length=32), nullable=True),
    Column("run_id", String(length=128), nullable=True),
    Column("collected_data", JSONB(astext_type=Text()), nullable=False, server_default=text("'{}'::jsonb")),
    Column("placeholder_mapping", JSONB(astext_type=Text()), nullable=False, server_default=text("'{}'::jsonb")),
    Column("user_contact", JSONB(astext_type=Text()), nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("thread_id", "agent_id", name="uq_agent_conversations_thread_agent"),
    Index("ix_agent_conversations_updated_at", "thread_id", "agent_id", "updated_at"),
)

__all__ = ["agent_conversations", "agent_profiles", "metadata"]
