from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from flow_sync.config import settings
from flow_sync.db import dispose_engine_cache, init_db, reset_engine_cache


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def sqlite_db(tmp_path: Path, anyio_backend: object) -> AsyncGenerator[str, None]:  # noqa: ARG001
    # Per-test sqlite file keeps tests isolated and deterministic.
    _ = anyio_backend
    old_db = settings.database_url
    settings.database_url = f"sqlite:///{tmp_path / 'flow_sync.db'}"
    reset_engine_cache()
    await init_db()
    try:
        yield settings.database_url
    finally:
        # Dispose while the event loop is still alive so aiosqlite threads shut down cleanly.
        await dispose_engine_cache()
        settings.database_url = old_db
