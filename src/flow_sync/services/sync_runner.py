from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from typing import Protocol

from sqlmodel.ext.asyncio.session import AsyncSession

from flow_sync.config import Settings
from flow_sync.db import session_scope
from flow_sync.domain.outcome import SyncError, SyncOutcome
from flow_sync.integrations.tasks_api import HttpxTasksAPI, TasksAPI
from flow_sync.repositories.local_store import SqlLocalStore
from flow_sync.services.sync_service import FULL, UPLOAD_ONLY, SyncOrchestrator


logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class SyncListener(Protocol):
    def on_started(self, account: str, mode: str) -> None: ...

    def on_finished(self, account: str, outcome: SyncOutcome) -> None: ...


def build_tasks_api(settings: Settings) -> TasksAPI:
    return HttpxTasksAPI(
        base_url=settings.tasks_api_base_url,
        bearer_token=settings.tasks_api_token,
        timeout_seconds=settings.tasks_api_timeout_seconds,
        page_size=settings.sync_page_size,
    )


def sync_allowed(settings: Settings, account: str) -> bool:
    # Sync only for the account the user picked; stale system registrations are ignored.
    configured = settings.sync_account
    return bool(settings.sync_enabled and configured and account == configured)


async def perform_sync(
    *,
    settings: Settings,
    account: str,
    upload_only: bool = False,
    api_factory: Callable[[Settings], TasksAPI] = build_tasks_api,
    session_factory: SessionFactory = session_scope,
    listener: SyncListener | None = None,
) -> SyncOutcome | None:
    """Run one sync for `account`, or return None when sync is disabled for it.

    The caller is responsible for never running two syncs of the same account
    at once.
    """
    if not sync_allowed(settings, account):
        logger.debug("sync disabled or account %r not selected, skipping", account)
        return None

    mode = UPLOAD_ONLY if upload_only else FULL
    if listener is not None:
        listener.on_started(account, mode)

    outcome: SyncOutcome = SyncError(mode=mode, kind="unexpected", cause="sync did not finish")
    try:
        async with session_factory() as session:
            orchestrator = SyncOrchestrator(
                api=api_factory(settings),
                store=SqlLocalStore(session, account),
            )
            if upload_only:
                outcome = await orchestrator.run_upload_only_sync()
            else:
                outcome = await orchestrator.run_full_sync()
    finally:
        if listener is not None:
            listener.on_finished(account, outcome)
    return outcome

