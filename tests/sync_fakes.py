from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace

from flow_sync.domain.entities import SyncState, TaskItem, TaskList
from flow_sync.domain.id_map import IdTranslationTable
from flow_sync.integrations.tasks_api import RemoteLists
from flow_sync.repositories.local_store import SaveSet


@dataclass
class FakeTasksAPI:
    etag: str = "etag-1"
    etag_after_upload: str = "etag-2"
    lists: list[TaskList] = field(default_factory=list)
    # Tasks reported as modified, keyed by list remote id.
    modified: dict[str, list[TaskItem]] = field(default_factory=dict)
    authenticated: bool = True
    conflict_lists: set[int] = field(default_factory=set)
    conflict_items: set[int] = field(default_factory=set)
    fail_fetch_etag: Exception | None = None
    fail_fetch_lists: Exception | None = None

    calls: list[str] = field(default_factory=list)
    sent_items: list[TaskItem] = field(default_factory=list)
    sent_lists: list[TaskList] = field(default_factory=list)
    # (list remote id, since) per download, and strict flag per list upload.
    fetched_since: list[tuple[str | None, str | None]] = field(default_factory=list)
    list_strict: list[bool] = field(default_factory=list)
    closed: bool = False
    _next_id: int = 0

    def _new_remote_id(self, prefix: str) -> str:
        self._next_id += 1
        return f"{prefix}{self._next_id}"

    async def authenticate(self) -> bool:
        self.calls.append("authenticate")
        return self.authenticated

    async def fetch_lists(self, local_etag: str, local_lists: list[TaskList]) -> RemoteLists:
        self.calls.append("fetch_lists")
        if self.fail_fetch_lists is not None:
            raise self.fail_fetch_lists
        return RemoteLists(etag=self.etag, lists=[copy.deepcopy(x) for x in self.lists])

    async def fetch_modified_items(self, task_list: TaskList, since: str | None) -> list[TaskItem]:
        self.calls.append(f"fetch_items:{task_list.remote_id}")
        self.fetched_since.append((task_list.remote_id, since))
        return [copy.deepcopy(t) for t in self.modified.get(task_list.remote_id or "", [])]

    async def upload_list(
        self, task_list: TaskList, *, strict_conflicts: bool
    ) -> TaskList | None:
        self.calls.append(f"upload_list:{task_list.local_id}")
        self.list_strict.append(strict_conflicts)
        self.sent_lists.append(copy.deepcopy(task_list))
        if task_list.local_id in self.conflict_lists:
            return None
        remote_id = task_list.remote_id or self._new_remote_id("L")
        return replace(task_list, remote_id=remote_id, dirty=False, etag=f"le-{remote_id}")

    async def upload_item(
        self, item: TaskItem, task_list: TaskList, *, strict_conflicts: bool
    ) -> TaskItem | None:
        assert task_list.remote_id, "tasks must only be sent into lists the server knows"
        assert not (item.deleted and not item.remote_id), "unsent delete passed to upload_item"
        self.calls.append(f"upload_item:{item.local_id}")
        self.sent_items.append(copy.deepcopy(item))
        if item.local_id in self.conflict_items:
            return None
        remote_id = item.remote_id or self._new_remote_id("T")
        return replace(
            item,
            remote_id=remote_id,
            dirty=False,
            updated=f"2026-01-02T00:00:{self._next_id:02d}.000Z",
        )

    async def fetch_etag(self) -> str:
        self.calls.append("fetch_etag")
        if self.fail_fetch_etag is not None:
            raise self.fail_fetch_etag
        return self.etag_after_upload

    async def aclose(self) -> None:
        self.closed = True


@dataclass
class FakeLocalStore:
    lists: list[TaskList] = field(default_factory=list)
    items: list[TaskItem] = field(default_factory=list)
    state: SyncState = field(default_factory=SyncState)
    fail_commit: Exception | None = None
    commits: list[tuple[SaveSet, SyncState | None]] = field(default_factory=list)
    _next_id: int = 1000

    async def get_all_lists(self) -> list[TaskList]:
        return copy.deepcopy(self.lists)

    async def get_all_items(self) -> list[TaskItem]:
        return copy.deepcopy(self.items)

    async def get_sync_state(self) -> SyncState:
        return copy.deepcopy(self.state)

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    async def commit(
        self, save: SaveSet, id_map: IdTranslationTable, state: SyncState | None
    ) -> None:
        if self.fail_commit is not None:
            raise self.fail_commit
        self.commits.append((copy.deepcopy(save), copy.deepcopy(state)))

        list_ids: dict[str, int] = {}
        for incoming in save.lists:
            key = incoming.key
            existing = next((x for x in self.lists if x.same_as(incoming)), None)
            if incoming.deleted:
                if existing is not None:
                    self.lists.remove(existing)
                continue
            if existing is None:
                existing = replace(incoming, local_id=self._new_id())
                self.lists.append(existing)
            existing.title = incoming.title
            existing.remote_id = incoming.remote_id
            existing.dirty = False
            list_ids[key] = list_ids[existing.key] = existing.local_id or 0

        for key, items in save.items.items():
            owner = save.owners[key]
            list_id = list_ids.get(key, owner.local_id)
            for incoming in items:
                existing = next((x for x in self.items if x.same_as(incoming)), None)
                if incoming.deleted:
                    if existing is not None:
                        self.items.remove(existing)
                    continue
                if existing is None:
                    existing = replace(incoming, local_id=self._new_id())
                    self.items.append(existing)
                else:
                    self.items[self.items.index(existing)] = existing = replace(
                        incoming, local_id=existing.local_id
                    )
                existing.list_id = list_id
                existing.dirty = False

        if state is not None:
            self.state = copy.deepcopy(state)
