from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class TaskList:
    """A named container of tasks.

    `local_id` is assigned by the local store; `remote_id` stays None until the
    remote service has accepted the list at least once.
    """

    title: str
    local_id: int | None = None
    remote_id: str | None = None
    deleted: bool = False
    dirty: bool = False
    updated: str | None = None
    etag: str | None = None

    @property
    def key(self) -> str:
        # Stable grouping key for one sync run. Lists only known remotely have no local id yet.
        if self.local_id is not None:
            return str(self.local_id)
        return f"remote:{self.remote_id}"

    def same_as(self, other: TaskList) -> bool:
        if self.local_id is not None and other.local_id is not None:
            return self.local_id == other.local_id
        if self.remote_id and other.remote_id:
            return self.remote_id == other.remote_id
        return self.title == other.title


@dataclass(eq=False)
class TaskItem:
    """A task inside one list.

    Tree position is expressed twice: `local_parent` / `local_previous` point at
    other local ids in the same list, `remote_parent` / `remote_previous` hold
    the remote-id equivalents and are filled in lazily during a sync run.
    """

    title: str
    local_id: int | None = None
    remote_id: str | None = None
    list_id: int | None = None
    notes: str = ""
    status: str = "needsAction"
    due: str | None = None
    completed: str | None = None
    deleted: bool = False
    dirty: bool = False
    updated: str | None = None
    etag: str | None = None
    position: str | None = None
    local_parent: int | None = None
    local_previous: int | None = None
    remote_parent: str | None = None
    remote_previous: str | None = None

    def same_as(self, other: TaskItem) -> bool:
        if self.local_id is not None and other.local_id is not None:
            return self.local_id == other.local_id
        if self.remote_id and other.remote_id:
            return self.remote_id == other.remote_id
        return False


@dataclass
class SyncState:
    """Per-account sync bookmark: last seen change-token and last synced timestamp."""

    etag: str = ""
    last_synced: str | None = None
