"""Full and upload-only synchronization runs.

A full run ends with two disjoint sets per list: tasks to save from the
server (remote wins) and tasks to upload (local wins). Uploading turns every
local winner into a server-confirmed task, so after the upload phase a single
save set holds every task modified on either side; it is committed together
with the new sync bookmark in one local transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

import httpx

from flow_sync.domain.changeset import (
    ChangeSetBuilder,
    LocalSnapshot,
    latest_timestamp,
    match_remote_items,
    match_remote_lists,
)
from flow_sync.domain.conflict import ConflictResolver, is_unsent_delete
from flow_sync.domain.entities import SyncState, TaskItem, TaskList
from flow_sync.domain.id_map import IdTranslationTable
from flow_sync.domain.ordering import upload_order
from flow_sync.domain.outcome import (
    ErrorKind,
    SyncCounters,
    SyncError,
    SyncLoginFailure,
    SyncOutcome,
    SyncSuccess,
)
from flow_sync.errors import (
    LocalStoreError,
    MalformedResponseError,
    RemoteAuthError,
    RemoteTransportError,
)
from flow_sync.integrations.tasks_api import TasksAPI
from flow_sync.repositories.local_store import LocalStore, SaveSet


logger = logging.getLogger(__name__)

FULL = "full"
UPLOAD_ONLY = "upload_only"


def _classify(exc: Exception) -> ErrorKind:
    if isinstance(exc, (RemoteTransportError, httpx.TransportError)):
        return "transport"
    if isinstance(exc, MalformedResponseError):
        return "malformed_response"
    if isinstance(exc, LocalStoreError):
        return "local_store"
    return "unexpected"


def _reconcile_uploaded_list(result: TaskList, local_lists: list[TaskList]) -> None:
    # The local list may not have a remote id yet, so match by equality rather than id.
    for local in local_lists:
        if result.same_as(local):
            local.title = result.title
            local.remote_id = result.remote_id
            local.etag = result.etag
            result.local_id = local.local_id
            return


def _pending_upload(remote: TaskList, lists_to_upload: list[TaskList]) -> bool:
    if remote.deleted or not remote.remote_id:
        return False
    return any(local.remote_id == remote.remote_id for local in lists_to_upload)


def _has_unresolved_position(item: TaskItem) -> bool:
    return (item.local_parent is not None and item.remote_parent is None) or (
        item.local_previous is not None and item.remote_previous is None
    )


class SyncOrchestrator:
    def __init__(
        self,
        *,
        api: TasksAPI,
        store: LocalStore,
        builder: ChangeSetBuilder | None = None,
        resolver: ConflictResolver | None = None,
    ) -> None:
        self._api = api
        self._store = store
        self._builder = builder or ChangeSetBuilder()
        self._resolver = resolver or ConflictResolver()

    async def run_full_sync(self) -> SyncOutcome:
        return await self._run(FULL, self._full_sync)

    async def run_upload_only_sync(self) -> SyncOutcome:
        return await self._run(UPLOAD_ONLY, self._upload_only)

    async def _run(
        self,
        mode: str,
        body: Callable[[SyncCounters], Awaitable[bool]],
    ) -> SyncOutcome:
        counters = SyncCounters()
        try:
            if not await self._api.authenticate():
                logger.info("%s sync: could not get credentials", mode)
                counters.auth_errors += 1
                return SyncLoginFailure(mode=mode, counters=counters)

            committed = await body(counters)
            logger.info("%s sync complete committed=%s counters=%s", mode, committed, counters)
            return SyncSuccess(mode=mode, counters=counters, committed=committed)
        except RemoteAuthError as e:
            logger.info("%s sync: credentials rejected: %s", mode, e)
            counters.auth_errors += 1
            return SyncLoginFailure(mode=mode, counters=counters)
        except Exception as e:
            kind = _classify(e)
            if kind == "transport":
                counters.io_errors += 1
            if kind == "unexpected":
                logger.exception("%s sync failed", mode)
            else:
                logger.warning("%s sync failed kind=%s: %s", mode, kind, e)
            return SyncError(mode=mode, kind=kind, cause=str(e), counters=counters)
        finally:
            await self._api.aclose()

    async def _snapshot(self) -> LocalSnapshot:
        lists = await self._store.get_all_lists()
        items = await self._store.get_all_items()
        state = await self._store.get_sync_state()
        return self._builder.build(lists, items, state)

    async def _fetch_remote_changes(
        self, snapshot: LocalSnapshot, counters: SyncCounters
    ) -> tuple[str, list[TaskList], dict[str, list[TaskItem]]]:
        remote = await self._api.fetch_lists(snapshot.etag, snapshot.all_lists)
        remote_lists = match_remote_lists(remote.lists, snapshot.all_lists)

        remote_items: dict[str, list[TaskItem]] = {}
        if remote.etag == snapshot.etag:
            logger.debug("etags match, nothing to download")
            return remote.etag, remote_lists, remote_items

        logger.debug("etags differ, downloading tasks updated since %s", snapshot.last_synced)
        for task_list in remote_lists:
            if not task_list.remote_id or task_list.deleted:
                continue
            downloaded = await self._api.fetch_modified_items(task_list, snapshot.last_synced)
            if not downloaded:
                continue
            remote_items[task_list.key] = match_remote_items(
                downloaded, task_list, snapshot.id_map
            )
            counters.items_downloaded += len(downloaded)
        return remote.etag, remote_lists, remote_items

    async def _upload_lists(
        self,
        snapshot: LocalSnapshot,
        save: SaveSet,
        counters: SyncCounters,
        *,
        strict: bool,
    ) -> bool:
        uploaded = False
        for task_list in snapshot.lists_to_upload:
            result = await self._api.upload_list(task_list, strict_conflicts=strict)
            if result is None:
                logger.info("list %s conflicted on upload, dropped", task_list.key)
                counters.conflicts_dropped += 1
                uploaded = uploaded or not strict
                continue
            uploaded = True
            counters.lists_uploaded += 1
            _reconcile_uploaded_list(result, snapshot.all_lists)
            save.add_list(result)
        return uploaded

    async def _upload_items(
        self,
        snapshot: LocalSnapshot,
        to_upload: dict[str, list[TaskItem]],
        save: SaveSet,
        counters: SyncCounters,
        *,
        strict: bool,
    ) -> bool:
        """Upload tasks list by list in topological order.

        Non-strict (full sync) uploads a task even when its parent/previous has
        no remote id yet. Strict (upload-only) skips it instead, since no later
        reconciliation pass would repair the dangling reference.
        """
        id_map: IdTranslationTable = snapshot.id_map
        uploaded = False
        for task_list in snapshot.all_lists:
            batch = to_upload.get(task_list.key)
            if not batch:
                continue
            if not task_list.remote_id or task_list.deleted:
                logger.info(
                    "list %s is deleted or has no remote id, skipping %d tasks",
                    task_list.key,
                    len(batch),
                )
                counters.items_skipped += len(batch)
                continue

            for item in upload_order(batch, snapshot.items_by_list.get(task_list.key)):
                item.remote_parent = id_map.get_remote(item.local_parent)
                item.remote_previous = id_map.get_remote(item.local_previous)
                if strict and _has_unresolved_position(item):
                    # An ancestor or predecessor failed to upload.
                    counters.items_skipped += 1
                    continue

                result = await self._api.upload_item(item, task_list, strict_conflicts=strict)
                if result is None:
                    counters.conflicts_dropped += 1
                    uploaded = uploaded or not strict
                    continue
                uploaded = True
                counters.items_uploaded += 1
                if result.local_id is not None and result.remote_id:
                    id_map.put(result.local_id, result.remote_id)
                save.add_items(task_list, [result])
        return uploaded

    async def _full_sync(self, counters: SyncCounters) -> bool:
        snapshot = await self._snapshot()

        server_etag, remote_lists, remote_items = await self._fetch_remote_changes(
            snapshot, counters
        )

        reconciliation = self._resolver.resolve(remote_items, snapshot.items_to_upload)
        for dropped in reconciliation.dropped:
            logger.debug("not uploading task %s: %s", dropped.item.local_id, dropped.reason)
        counters.conflicts_dropped += sum(
            1 for d in reconciliation.dropped if d.reason == "remote_newer"
        )
        # Tasks of a list deleted on the server have nowhere to go.
        for task_list in remote_lists:
            if task_list.deleted and task_list.key in reconciliation.to_upload:
                counters.items_skipped += len(reconciliation.to_upload.pop(task_list.key))

        save = SaveSet()
        for task_list in remote_lists:
            if _pending_upload(task_list, snapshot.lists_to_upload):
                # The local edit wins; its upload result is saved instead.
                continue
            save.add_list(task_list)
        lists_by_key = {lst.key: lst for lst in [*snapshot.all_lists, *remote_lists]}
        for key, items in reconciliation.remote_wins.items():
            save.add_items(lists_by_key[key], items)
        for key, items in reconciliation.local_deletions().items():
            save.add_items(lists_by_key[key], items)
        for task_list in snapshot.lists_to_purge:
            save.add_list(task_list)

        # Lists first: tasks need their list's remote id.
        uploaded = await self._upload_lists(snapshot, save, counters, strict=False)
        uploaded = (
            await self._upload_items(
                snapshot, reconciliation.to_upload, save, counters, strict=False
            )
            or uploaded
        )

        # Uploads change the server etag; otherwise the one fetched above is current.
        etag = await self._api.fetch_etag() if uploaded else server_etag
        state = SyncState(
            etag=etag, last_synced=latest_timestamp(snapshot.last_synced, save.all_items())
        )
        await self._store.commit(save, snapshot.id_map, state)
        return True

    async def _upload_only(self, counters: SyncCounters) -> bool:
        snapshot = await self._snapshot()
        save = SaveSet()

        lists_by_key = {lst.key: lst for lst in snapshot.all_lists}
        to_upload: dict[str, list[TaskItem]] = {}
        for key, items in snapshot.items_to_upload.items():
            kept = [t for t in items if not is_unsent_delete(t)]
            unsent = [t for t in items if is_unsent_delete(t)]
            if kept:
                to_upload[key] = kept
            if unsent:
                save.add_items(lists_by_key[key], unsent)
        for task_list in snapshot.lists_to_purge:
            save.add_list(task_list)

        uploaded = await self._upload_lists(snapshot, save, counters, strict=True)
        uploaded = (
            await self._upload_items(snapshot, to_upload, save, counters, strict=True) or uploaded
        )

        if not uploaded:
            logger.debug("upload-only: nothing uploaded, skipping commit")
            return False
        # The etag is left alone here; the next full sync picks it up.
        await self._store.commit(save, snapshot.id_map, None)
        return True
