from __future__ import annotations

from dataclasses import dataclass, field

from flow_sync.domain.entities import SyncState, TaskItem, TaskList
from flow_sync.domain.id_map import IdTranslationTable


@dataclass
class LocalSnapshot:
    all_lists: list[TaskList]
    lists_to_upload: list[TaskList]
    items_by_list: dict[str, list[TaskItem]]
    items_to_upload: dict[str, list[TaskItem]]
    id_map: IdTranslationTable
    etag: str = ""
    last_synced: str | None = None
    # Deleted before they ever reached the server: only removed locally.
    lists_to_purge: list[TaskList] = field(default_factory=list)

    def all_items(self) -> list[TaskItem]:
        return [t for items in self.items_by_list.values() for t in items]


class ChangeSetBuilder:
    """Partition local state into upload candidates and reference data.

    Pure: no I/O, no mutation of the inputs.
    """

    def build(
        self, lists: list[TaskList], items: list[TaskItem], state: SyncState
    ) -> LocalSnapshot:
        lists_to_upload = [
            lst for lst in lists if (lst.remote_id is None or lst.dirty) and not _unsent_delete(lst)
        ]
        lists_to_purge = [lst for lst in lists if _unsent_delete(lst)]

        key_by_list_id = {lst.local_id: lst.key for lst in lists if lst.local_id is not None}
        items_by_list: dict[str, list[TaskItem]] = {lst.key: [] for lst in lists}
        items_to_upload: dict[str, list[TaskItem]] = {}
        for item in items:
            list_key = key_by_list_id.get(item.list_id)
            if list_key is None:
                # Orphaned row; nothing to sync it against.
                continue
            items_by_list[list_key].append(item)
            if item.dirty:
                items_to_upload.setdefault(list_key, []).append(item)

        id_map = IdTranslationTable(
            (t.local_id, t.remote_id)
            for t in items
            if t.local_id is not None and t.remote_id
        )

        return LocalSnapshot(
            all_lists=list(lists),
            lists_to_upload=lists_to_upload,
            items_by_list=items_by_list,
            items_to_upload=items_to_upload,
            id_map=id_map,
            etag=state.etag or "",
            last_synced=state.last_synced,
            lists_to_purge=lists_to_purge,
        )


def _unsent_delete(lst: TaskList) -> bool:
    return lst.deleted and not lst.remote_id


def match_remote_lists(remote_lists: list[TaskList], local_lists: list[TaskList]) -> list[TaskList]:
    """Take remote list fields as the truth, but keep the local database id."""
    local_by_remote = {lst.remote_id: lst for lst in local_lists if lst.remote_id}
    for remote in remote_lists:
        local = local_by_remote.get(remote.remote_id)
        if local is not None:
            remote.local_id = local.local_id
    return remote_lists


def match_remote_items(
    remote_items: list[TaskItem],
    task_list: TaskList,
    id_map: IdTranslationTable,
) -> list[TaskItem]:
    """Attach local ids and local tree references to freshly downloaded tasks.

    References to tasks not yet stored locally stay None here; the local
    store resolves them again once the new rows have ids.
    """
    for item in remote_items:
        item.list_id = task_list.local_id
        if item.local_id is None:
            item.local_id = id_map.get_local(item.remote_id)
        item.local_parent = id_map.get_local(item.remote_parent)
        item.local_previous = id_map.get_local(item.remote_previous)
        item.dirty = False
    return remote_items


def latest_timestamp(current: str | None, items: list[TaskItem]) -> str | None:
    """Max of `current` and every server `updated` stamp (RFC 3339 strings in UTC)."""
    stamps = [t.updated for t in items if t.updated]
    if current:
        stamps.append(current)
    if not stamps:
        return None
    return max(stamps, key=_sortable)


def _sortable(stamp: str) -> str:
    # "2024-01-01T00:00:00Z" and "2024-01-01T00:00:00.000Z" must compare by time.
    whole, _, fraction = stamp.rstrip("Z").partition(".")
    return f"{whole}.{fraction.ljust(6, '0')}"
