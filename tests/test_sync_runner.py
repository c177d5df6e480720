from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import pytest

from flow_sync.config import Settings
from flow_sync.db import session_scope
from flow_sync.domain.entities import TaskItem, TaskList
from flow_sync.domain.outcome import SyncError, SyncOutcome, SyncSuccess
from flow_sync.repositories.local_store import SqlLocalStore
from flow_sync.services.sync_runner import perform_sync, sync_allowed

from sync_fakes import FakeTasksAPI


@dataclass
class RecordingListener:
    events: list[tuple[str, str, object]] = field(default_factory=list)

    def on_started(self, account: str, mode: str) -> None:
        self.events.append(("started", account, mode))

    def on_finished(self, account: str, outcome: SyncOutcome) -> None:
        self.events.append(("finished", account, outcome))


def _settings(**overrides: object) -> Settings:
    data: dict[str, object] = {"sync_enabled": True, "sync_account": "acct"}
    data.update(overrides)
    return Settings.model_validate(data)


@pytest.mark.parametrize(
    "case",
    [
        {"name": "enabled and selected", "overrides": {}, "account": "acct", "expect": True},
        {
            "name": "disabled",
            "overrides": {"sync_enabled": False},
            "account": "acct",
            "expect": False,
        },
        {"name": "other account", "overrides": {}, "account": "stale", "expect": False},
        {
            "name": "no account selected",
            "overrides": {"sync_account": ""},
            "account": "",
            "expect": False,
        },
    ],
    ids=lambda c: c["name"],
)
def test_sync_allowed(case):
    assert sync_allowed(_settings(**case["overrides"]), case["account"]) is case["expect"]


@pytest.mark.anyio
async def test_gated_sync_does_nothing():
    listener = RecordingListener()

    def factory(_: Settings) -> FakeTasksAPI:
        raise AssertionError("api must not be built for a gated account")

    outcome = await perform_sync(
        settings=_settings(), account="stale", api_factory=factory, listener=listener
    )

    assert outcome is None
    assert listener.events == []


@pytest.mark.anyio
async def test_full_sync_downloads_into_sqlite_and_notifies(sqlite_db: str):
    api = FakeTasksAPI(
        etag="E1",
        lists=[TaskList(title="Inbox", remote_id="r1")],
        modified={
            "r1": [
                TaskItem(title="first", remote_id="a", updated="2026-01-05T00:00:00.000Z"),
                TaskItem(title="second", remote_id="b", remote_previous="a"),
            ]
        },
    )
    listener = RecordingListener()

    outcome = await perform_sync(
        settings=_settings(), account="acct", api_factory=lambda _: api, listener=listener
    )

    assert isinstance(outcome, SyncSuccess)
    assert outcome.counters.items_downloaded == 2
    assert [e[0] for e in listener.events] == ["started", "finished"]
    assert listener.events[0][2] == "full"
    assert listener.events[1][2] is outcome
    assert api.closed is True

    async with session_scope() as session:
        store = SqlLocalStore(session, "acct")
        items = {t.remote_id: t for t in await store.get_all_items()}
        state = await store.get_sync_state()
    assert items["b"].local_previous == items["a"].local_id
    assert (state.etag, state.last_synced) == ("E1", "2026-01-05T00:00:00.000Z")


@pytest.mark.anyio
async def test_upload_only_mode_is_reported_to_listener(sqlite_db: str):
    listener = RecordingListener()

    outcome = await perform_sync(
        settings=_settings(),
        account="acct",
        upload_only=True,
        api_factory=lambda _: FakeTasksAPI(),
        listener=listener,
    )

    assert isinstance(outcome, SyncSuccess)
    assert outcome.committed is False
    assert listener.events[0] == ("started", "acct", "upload_only")


@pytest.mark.anyio
async def test_listener_hears_about_runs_that_blow_up():
    listener = RecordingListener()

    @asynccontextmanager
    async def broken_session():
        raise RuntimeError("database unavailable")
        yield

    with pytest.raises(RuntimeError):
        await perform_sync(
            settings=_settings(),
            account="acct",
            api_factory=lambda _: FakeTasksAPI(),
            session_factory=broken_session,
            listener=listener,
        )

    finished = listener.events[-1]
    assert finished[0] == "finished"
    assert isinstance(finished[2], SyncError)
    assert finished[2].kind == "unexpected"
