from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

from flow_sync.config import Settings, settings
from flow_sync.db import dispose_engine_cache, init_db
from flow_sync.domain.outcome import SyncOutcome, outcome_to_dict
from flow_sync.services.sync_runner import perform_sync


EXIT_CODES = {"success": 0, "error": 1, "login_failure": 2}


def _exit_code(outcome: SyncOutcome | None) -> int:
    if outcome is None:
        return 0
    return EXIT_CODES[outcome.status]


async def _run(cfg: Settings, account: str, upload_only: bool, create_schema: bool) -> int:
    try:
        if create_schema:
            await init_db()
        outcome = await perform_sync(settings=cfg, account=account, upload_only=upload_only)
    finally:
        await dispose_engine_cache()

    if outcome is None:
        print(json.dumps({"status": "skipped", "account": account}))
    else:
        print(json.dumps(outcome_to_dict(outcome), ensure_ascii=False, sort_keys=True))
    return _exit_code(outcome)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="flow-sync",
        description="Synchronize local task lists with the remote task service.",
    )
    parser.add_argument(
        "--account",
        default=None,
        help="Account to sync (default: SYNC_ACCOUNT from settings)",
    )
    parser.add_argument(
        "--upload-only",
        action="store_true",
        help="Push local changes without downloading or resolving conflicts.",
    )
    parser.add_argument(
        "--init-db",
        action="store_true",
        help="Create missing tables before syncing (local use; deployments run Alembic).",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    account = args.account or settings.sync_account
    return asyncio.run(_run(settings, account, args.upload_only, args.init_db))


if __name__ == "__main__":
    sys.exit(main())
