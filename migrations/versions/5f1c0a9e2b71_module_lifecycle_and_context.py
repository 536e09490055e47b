"""module_lifecycle_and_context

Creates the module lifecycle and context snapshot tables:
  - module_activations      — one row per (user, module)
  - sub_module_completions  — one row per (user, sub-module)
  - user_context_master     — last synthesized context per user
  - chat_conversations / chat_messages / chat_memory — conversation store
    read by the context engine

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via db.create_all()
in a development environment.

Revision ID: 5f1c0a9e2b71
Revises:
Create Date: 2026-10-19 09:12:44.118302
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '5f1c0a9e2b71'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Module Activations ────────────────────────────────────────────────
    if "module_activations" not in existing:
        op.create_table(
            "module_activations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("module_id", sa.String(length=20), nullable=False,
                      comment="Catalog key, e.g. MOD_201"),
            sa.Column("module_name", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
            sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("metadata", sa.JSON(), nullable=True,
                      comment="Merged on update, never replaced"),
            sa.Column("outputs", sa.JSON(), nullable=True, comment="Module-produced artifacts"),
            sa.Column("activated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_activity", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "module_id", name="uq_module_activation_user_module"),
            sa.CheckConstraint("status IN ('inactive','active','paused','completed')",
                               name="ck_module_activation_status"),
            sa.CheckConstraint("progress >= 0 AND progress <= 100",
                               name="ck_module_activation_progress"),
        )
        op.create_index("ix_module_activations_user_id", "module_activations", ["user_id"])

    # ── Sub-module Completions ────────────────────────────────────────────
    if "sub_module_completions" not in existing:
        op.create_table(
            "sub_module_completions",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("module_id", sa.String(length=20), nullable=False),
            sa.Column("sub_module_id", sa.String(length=30), nullable=False),
            sa.Column("data", sa.JSON(), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "sub_module_id", name="uq_sub_module_completion_user_sub"),
        )
        op.create_index("ix_sub_module_completions_user_id", "sub_module_completions", ["user_id"])
        op.create_index("ix_sub_module_completions_user_module", "sub_module_completions",
                        ["user_id", "module_id"])

    # ── User Context Master ───────────────────────────────────────────────
    if "user_context_master" not in existing:
        op.create_table(
            "user_context_master",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("context_version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("context_yaml", sa.Text(), nullable=False),
            sa.Column("context_json", sa.JSON(), nullable=False),
            sa.Column("context_hash", sa.String(length=64), nullable=True,
                      comment="SHA-256 of context_yaml"),
            sa.Column("size_bytes", sa.Integer(), nullable=True),
            sa.Column("update_count", sa.Integer(), nullable=True),
            sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_user_context_master_user_id", "user_context_master", ["user_id"],
                        unique=True)

    # ── Conversation store ────────────────────────────────────────────────
    if "chat_conversations" not in existing:
        op.create_table(
            "chat_conversations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_chat_conversations_user_id", "chat_conversations", ["user_id"])

    if "chat_messages" not in existing:
        op.create_table(
            "chat_messages",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("conversation_id", sa.Integer(), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False,
                      comment="user | assistant | system"),
            sa.Column("content", sa.Text(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["conversation_id"], ["chat_conversations.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint("role IN ('user','assistant','system')", name="ck_chat_msg_role"),
        )
        op.create_index("ix_chat_messages_conversation_id", "chat_messages", ["conversation_id"])

    if "chat_memory" not in existing:
        op.create_table(
            "chat_memory",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("category", sa.String(length=30), nullable=False, server_default="fact"),
            sa.Column("key", sa.String(length=120), nullable=False),
            sa.Column("value", sa.Text(), nullable=False),
            sa.Column("importance", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_chat_memory_user_id", "chat_memory", ["user_id"])


def downgrade():
    op.drop_table("chat_memory")
    op.drop_table("chat_messages")
    op.drop_table("chat_conversations")
    op.drop_table("user_context_master")
    op.drop_table("sub_module_completions")
    op.drop_table("module_activations")
