"""init schema (task lists + task items + sync state)

Revision ID: 20261018_0001
Revises: None
Create Date: 2026-10-18 00:00:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(table_name: str) -> bool:
    bind = op.get_bind()
    insp = inspect(bind)
    return table_name in insp.get_table_names()


def _sync_columns() -> list[sa.Column]:
    return [
        sa.Column("account", sa.String(length=255), nullable=False),
        sa.Column("remote_id", sa.String(length=255), nullable=True),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("dirty", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("updated", sa.String(length=40), nullable=True),
        sa.Column("etag", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _sync_indexes(table: str) -> None:
    for col in ("account", "remote_id", "deleted", "dirty", "created_at", "updated_at"):
        op.create_index(f"ix_{table}_{col}", table, [col], unique=False)


def upgrade() -> None:
    if not _table_exists("task_lists"):
        op.create_table(
            "task_lists",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
            sa.Column("title", sa.String(length=1024), nullable=False),
            *_sync_columns(),
            sa.UniqueConstraint("account", "remote_id", name="uq_task_lists_account_remote_id"),
        )
        _sync_indexes("task_lists")

    if not _table_exists("task_items"):
        op.create_table(
            "task_items",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
            sa.Column("list_id", sa.Integer(), sa.ForeignKey("task_lists.id"), nullable=False),
            sa.Column("title", sa.String(length=1024), nullable=False),
            sa.Column("notes", sa.Text(), nullable=False, server_default=""),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("due", sa.String(length=40), nullable=True),
            sa.Column("completed", sa.String(length=40), nullable=True),
            sa.Column("position", sa.String(length=64), nullable=True),
            sa.Column("local_parent", sa.Integer(), nullable=True),
            sa.Column("local_previous", sa.Integer(), nullable=True),
            sa.Column("remote_parent", sa.String(length=255), nullable=True),
            sa.Column("remote_previous", sa.String(length=255), nullable=True),
            *_sync_columns(),
            sa.UniqueConstraint("account", "remote_id", name="uq_task_items_account_remote_id"),
        )
        _sync_indexes("task_items")
        op.create_index("ix_task_items_list_id", "task_items", ["list_id"], unique=False)
        op.create_index("ix_task_items_local_parent", "task_items", ["local_parent"], unique=False)
        op.create_index(
            "ix_task_items_local_previous", "task_items", ["local_previous"], unique=False
        )

    if not _table_exists("sync_state"):
        op.create_table(
            "sync_state",
            sa.Column("account", sa.String(length=255), primary_key=True, nullable=False),
            sa.Column("etag", sa.Text(), nullable=False, server_default=""),
            sa.Column("last_synced", sa.String(length=40), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        )


def downgrade() -> None:
    op.drop_table("sync_state")
    op.drop_table("task_items")
    op.drop_table("task_lists")
