from __future__ import annotations

import pytest

from flow_sync.domain.entities import SyncState, TaskItem, TaskList
from flow_sync.domain.outcome import SyncError, SyncSuccess
from flow_sync.errors import RemoteTransportError
from flow_sync.services.sync_service import SyncOrchestrator

from sync_fakes import FakeLocalStore, FakeTasksAPI


def _task(local_id: int, **kwargs: object) -> TaskItem:
    fields: dict[str, object] = {"list_id": 1, "dirty": True}
    fields.update(kwargs)
    return TaskItem(title=f"task {local_id}", local_id=local_id, **fields)  # type: ignore[arg-type]


def _setup(items: list[TaskItem]) -> tuple[FakeTasksAPI, FakeLocalStore]:
    store = FakeLocalStore(
        lists=[TaskList(title="L1", local_id=1, remote_id="r1")],
        items=items,
        state=SyncState(etag="etag-1", last_synced="2026-01-01T00:00:00.000Z"),
    )
    return FakeTasksAPI(), store


@pytest.mark.anyio
async def test_child_of_never_uploaded_parent_is_skipped() -> None:
    # I5 is not dirty and has no remote id, so nothing can resolve I4's parent.
    api, store = _setup([_task(5, dirty=False), _task(4, local_parent=5)])

    outcome = await SyncOrchestrator(api=api, store=store).run_upload_only_sync()

    assert isinstance(outcome, SyncSuccess)
    assert outcome.committed is False
    assert outcome.counters.items_skipped == 1
    assert api.sent_items == []
    assert store.commits == []


@pytest.mark.anyio
async def test_failed_parent_blocks_its_dependents() -> None:
    api, store = _setup(
        [_task(5), _task(4, local_parent=5), _task(6, local_previous=4, local_parent=5), _task(7)]
    )
    api.conflict_items = {5}

    outcome = await SyncOrchestrator(api=api, store=store).run_upload_only_sync()

    assert isinstance(outcome, SyncSuccess)
    assert [t.local_id for t in api.sent_items] == [5, 7]
    assert outcome.counters.items_skipped == 2
    assert outcome.counters.conflicts_dropped == 1
    for sent in api.sent_items:
        assert sent.local_parent is None or sent.remote_parent is not None
        assert sent.local_previous is None or sent.remote_previous is not None


@pytest.mark.anyio
async def test_uploaded_parent_unblocks_child_in_same_run() -> None:
    api, store = _setup([_task(4, local_parent=5), _task(5)])

    outcome = await SyncOrchestrator(api=api, store=store).run_upload_only_sync()

    assert isinstance(outcome, SyncSuccess)
    assert outcome.committed is True
    assert [t.local_id for t in api.sent_items] == [5, 4]
    stored = {t.local_id: t for t in store.items}
    assert api.sent_items[1].remote_parent == stored[5].remote_id


@pytest.mark.anyio
async def test_upload_only_never_touches_the_token() -> None:
    api, store = _setup([_task(10)])

    outcome = await SyncOrchestrator(api=api, store=store).run_upload_only_sync()

    assert isinstance(outcome, SyncSuccess)
    assert "fetch_lists" not in api.calls
    assert "fetch_etag" not in api.calls
    assert not any(c.startswith("fetch_items") for c in api.calls)
    assert store.commits[0][1] is None
    assert store.state.etag == "etag-1"


@pytest.mark.anyio
async def test_conflicting_list_is_dropped_and_its_tasks_wait() -> None:
    api, store = _setup([_task(20, list_id=2)])
    store.lists.append(TaskList(title="New", local_id=2, dirty=True))
    api.conflict_lists = {2}

    outcome = await SyncOrchestrator(api=api, store=store).run_upload_only_sync()

    assert isinstance(outcome, SyncSuccess)
    assert api.list_strict == [True]
    assert outcome.committed is False
    assert api.sent_items == []
    assert store.commits == []


@pytest.mark.anyio
async def test_unsent_delete_is_never_uploaded() -> None:
    api, store = _setup([_task(30, deleted=True), _task(31)])

    outcome = await SyncOrchestrator(api=api, store=store).run_upload_only_sync()

    assert isinstance(outcome, SyncSuccess)
    assert [t.local_id for t in api.sent_items] == [31]
    assert [t.local_id for t in store.items] == [31]


@pytest.mark.anyio
async def test_transport_error_aborts_upload_only_run() -> None:
    api, store = _setup([_task(10)])

    async def boom(*args: object, **kwargs: object) -> TaskList | None:
        raise RemoteTransportError("upload task list failed. 503 unavailable")

    store.lists.append(TaskList(title="New", local_id=2, dirty=True))
    api.upload_list = boom  # type: ignore[method-assign]

    outcome = await SyncOrchestrator(api=api, store=store).run_upload_only_sync()

    assert isinstance(outcome, SyncError)
    assert outcome.counters.io_errors == 1
    assert store.commits == []
    assert api.closed is True
