# basedpyright: reportAssignmentType=false
# basedpyright: reportIncompatibleVariableOverride=false

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AccountRow(SQLModel):
    account: str = Field(index=True, min_length=1, max_length=255)

    remote_id: Optional[str] = Field(default=None, index=True, max_length=255)
    deleted: bool = Field(default=False, index=True)
    # Locally modified since the last successful sync.
    dirty: bool = Field(default=False, index=True)
    # Server-reported RFC 3339 modification time.
    updated: Optional[str] = Field(default=None, max_length=40)
    etag: Optional[str] = Field(default=None, max_length=255)

    created_at: datetime = Field(default_factory=utc_now, index=True)
    updated_at: datetime = Field(default_factory=utc_now, index=True)


class TaskListRow(AccountRow, table=True):
    __tablename__ = "task_lists"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]
    __table_args__ = (
        UniqueConstraint("account", "remote_id", name="uq_task_lists_account_remote_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(default="", max_length=1024)


class TaskItemRow(AccountRow, table=True):
    __tablename__ = "task_items"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]
    __table_args__ = (
        UniqueConstraint("account", "remote_id", name="uq_task_items_account_remote_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    list_id: int = Field(index=True, foreign_key="task_lists.id")

    title: str = Field(default="", max_length=1024)
    notes: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    status: str = Field(default="needsAction", max_length=20)
    due: Optional[str] = Field(default=None, max_length=40)
    completed: Optional[str] = Field(default=None, max_length=40)
    position: Optional[str] = Field(default=None, max_length=64)

    # Tree position by local id; remote equivalents are cached for the next upload.
    local_parent: Optional[int] = Field(default=None, index=True)
    local_previous: Optional[int] = Field(default=None, index=True)
    remote_parent: Optional[str] = Field(default=None, max_length=255)
    remote_previous: Optional[str] = Field(default=None, max_length=255)


class SyncStateRow(SQLModel, table=True):
    __tablename__ = "sync_state"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    account: str = Field(primary_key=True, min_length=1, max_length=255)
    etag: str = Field(default="", sa_column=Column(Text, nullable=False, server_default=""))
    last_synced: Optional[str] = Field(default=None, max_length=40)
    updated_at: datetime = Field(default_factory=utc_now)
