from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from flow_sync.domain.entities import SyncState, TaskItem, TaskList
from flow_sync.domain.id_map import IdTranslationTable
from flow_sync.errors import LocalStoreError
from flow_sync.models import SyncStateRow, TaskItemRow, TaskListRow, utc_now


logger = logging.getLogger(__name__)


@dataclass
class SaveSet:
    """Everything one sync run writes back: remote wins plus upload results."""

    lists: list[TaskList] = field(default_factory=list)
    items: dict[str, list[TaskItem]] = field(default_factory=dict)
    owners: dict[str, TaskList] = field(default_factory=dict)

    def add_list(self, task_list: TaskList) -> None:
        self.lists.append(task_list)

    def add_items(self, task_list: TaskList, items: list[TaskItem]) -> None:
        self.owners.setdefault(task_list.key, task_list)
        self.items.setdefault(task_list.key, []).extend(items)

    def all_items(self) -> list[TaskItem]:
        return [t for items in self.items.values() for t in items]


class LocalStore(Protocol):
    async def get_all_lists(self) -> list[TaskList]: ...

    async def get_all_items(self) -> list[TaskItem]: ...

    async def get_sync_state(self) -> SyncState: ...

    async def commit(
        self, save: SaveSet, id_map: IdTranslationTable, state: SyncState | None
    ) -> None: ...


def _list_from_row(row: TaskListRow) -> TaskList:
    return TaskList(
        title=row.title,
        local_id=row.id,
        remote_id=row.remote_id,
        deleted=row.deleted,
        dirty=row.dirty,
        updated=row.updated,
        etag=row.etag,
    )


def _item_from_row(row: TaskItemRow) -> TaskItem:
    return TaskItem(
        title=row.title,
        local_id=row.id,
        remote_id=row.remote_id,
        list_id=row.list_id,
        notes=row.notes,
        status=row.status,
        due=row.due,
        completed=row.completed,
        deleted=row.deleted,
        dirty=row.dirty,
        updated=row.updated,
        etag=row.etag,
        position=row.position,
        local_parent=row.local_parent,
        local_previous=row.local_previous,
        remote_parent=row.remote_parent,
        remote_previous=row.remote_previous,
    )


def _row_id(row: TaskListRow | TaskItemRow) -> int:
    if row.id is None:
        raise LocalStoreError(f"{type(row).__name__} has no id after flush")
    return row.id


def _resolve_local_ref(
    id_map: IdTranslationTable, remote_ref: str | None, local_ref: int | None
) -> int | None:
    if not remote_ref:
        return local_ref
    resolved = id_map.get_local(remote_ref)
    return resolved if resolved is not None else local_ref


class SqlLocalStore:
    """Local store for one account, backed by SQLModel tables.

    Reads run in short transactions. `commit` applies the whole save set and
    the sync bookmark in a single transaction: either everything lands or
    nothing does.
    """

    def __init__(self, session: AsyncSession, account: str) -> None:
        self._session = session
        self._account = account

    async def get_all_lists(self) -> list[TaskList]:
        async with self._session.begin():
            rows = (
                await self._session.exec(
                    select(TaskListRow)
                    .where(TaskListRow.account == self._account)
                    .order_by(TaskListRow.id)  # pyright: ignore[reportArgumentType]
                )
            ).all()
            return [_list_from_row(r) for r in rows]

    async def get_all_items(self) -> list[TaskItem]:
        async with self._session.begin():
            rows = (
                await self._session.exec(
                    select(TaskItemRow)
                    .where(TaskItemRow.account == self._account)
                    .order_by(TaskItemRow.id)  # pyright: ignore[reportArgumentType]
                )
            ).all()
            return [_item_from_row(r) for r in rows]

    async def get_sync_state(self) -> SyncState:
        async with self._session.begin():
            row = await self._session.get(SyncStateRow, self._account)
            if row is None:
                return SyncState()
            return SyncState(etag=row.etag, last_synced=row.last_synced)

    async def get_last_synced_timestamp(self) -> str | None:
        return (await self.get_sync_state()).last_synced

    async def commit(
        self, save: SaveSet, id_map: IdTranslationTable, state: SyncState | None
    ) -> None:
        try:
            async with self._session.begin():
                list_ids = await self._save_lists(save.lists)
                await self._save_items(save, list_ids, id_map)
                if state is not None:
                    await self._save_state(state)
        except SQLAlchemyError as e:
            raise LocalStoreError(f"local commit failed: {e}") from e
        logger.info(
            "committed account=%s lists=%d items=%d state=%s",
            self._account,
            len(save.lists),
            len(save.all_items()),
            "saved" if state is not None else "unchanged",
        )

    async def _find_list_row(self, task_list: TaskList) -> TaskListRow | None:
        if task_list.local_id is not None:
            row = await self._session.get(TaskListRow, task_list.local_id)
            if row is not None and row.account == self._account:
                return row
        if task_list.remote_id:
            result = await self._session.exec(
                select(TaskListRow)
                .where(TaskListRow.account == self._account)
                .where(TaskListRow.remote_id == task_list.remote_id)
            )
            return result.first()
        return None

    async def _find_item_row(self, item: TaskItem) -> TaskItemRow | None:
        if item.local_id is not None:
            row = await self._session.get(TaskItemRow, item.local_id)
            if row is not None and row.account == self._account:
                return row
        if item.remote_id:
            result = await self._session.exec(
                select(TaskItemRow)
                .where(TaskItemRow.account == self._account)
                .where(TaskItemRow.remote_id == item.remote_id)
            )
            return result.first()
        return None

    async def _save_lists(self, lists: list[TaskList]) -> dict[str, int]:
        list_ids: dict[str, int] = {}
        for task_list in lists:
            key = task_list.key
            row = await self._find_list_row(task_list)
            if task_list.deleted:
                # Deletion acknowledged by the server, or never sent: drop the list with its tasks.
                if row is not None:
                    await self._delete_list_row(row)
                continue
            if row is None:
                row = TaskListRow(account=self._account)
            row.title = task_list.title
            row.remote_id = task_list.remote_id
            row.updated = task_list.updated
            row.etag = task_list.etag
            row.deleted = False
            row.dirty = False
            row.updated_at = utc_now()
            self._session.add(row)
            await self._session.flush()
            task_list.local_id = _row_id(row)
            list_ids[key] = list_ids[task_list.key] = task_list.local_id
        return list_ids

    async def _delete_list_row(self, row: TaskListRow) -> None:
        items = (
            await self._session.exec(select(TaskItemRow).where(TaskItemRow.list_id == row.id))
        ).all()
        for item_row in items:
            await self._session.delete(item_row)
        await self._session.delete(row)
        await self._session.flush()

    async def _resolve_list_id(
        self, key: str, owner: TaskList | None, list_ids: dict[str, int]
    ) -> int | None:
        if key in list_ids:
            return list_ids[key]
        if owner is None:
            return None
        row = await self._find_list_row(owner)
        return row.id if row is not None else None

    async def _save_items(
        self, save: SaveSet, list_ids: dict[str, int], id_map: IdTranslationTable
    ) -> None:
        written: list[tuple[TaskItem, TaskItemRow]] = []
        for key, items in save.items.items():
            list_id = await self._resolve_list_id(key, save.owners.get(key), list_ids)
            if list_id is None:
                logger.warning("skipping %d tasks of unknown list %s", len(items), key)
                continue
            for item in items:
                row = await self._find_item_row(item)
                if item.deleted:
                    if row is not None:
                        await self._session.delete(row)
                    continue
                if row is None:
                    row = TaskItemRow(account=self._account, list_id=list_id)
                row.list_id = list_id
                row.remote_id = item.remote_id
                row.title = item.title
                row.notes = item.notes
                row.status = item.status
                row.due = item.due
                row.completed = item.completed
                row.updated = item.updated
                row.etag = item.etag
                row.position = item.position
                row.remote_parent = item.remote_parent
                row.remote_previous = item.remote_previous
                row.deleted = False
                row.dirty = False
                row.updated_at = utc_now()
                self._session.add(row)
                await self._session.flush()
                item.local_id = _row_id(row)
                if item.remote_id:
                    id_map.put(item.local_id, item.remote_id)
                written.append((item, row))

        # Second pass: rows inserted above now have ids, so remote tree references resolve.
        for item, row in written:
            row.local_parent = _resolve_local_ref(id_map, item.remote_parent, item.local_parent)
            row.local_previous = _resolve_local_ref(
                id_map, item.remote_previous, item.local_previous
            )
            self._session.add(row)
        await self._session.flush()

    async def _save_state(self, state: SyncState) -> None:
        row = await self._session.get(SyncStateRow, self._account)
        if row is None:
            row = SyncStateRow(account=self._account)
        row.etag = state.etag
        row.last_synced = state.last_synced
        row.updated_at = utc_now()
        self._session.add(row)
