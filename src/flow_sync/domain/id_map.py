from __future__ import annotations

from collections.abc import Iterable


class IdTranslationTable:
    """Invertible local id <-> remote id mapping for one sync run.

    Later `put` calls overwrite silently and evict the stale reverse entry, so
    every local id maps to at most one remote id and vice versa.
    """

    def __init__(self, pairs: Iterable[tuple[int, str]] = ()) -> None:
        self._to_remote: dict[int, str] = {}
        self._to_local: dict[str, int] = {}
        self.update(pairs)

    def put(self, local_id: int, remote_id: str) -> None:
        old_remote = self._to_remote.get(local_id)
        if old_remote is not None and old_remote != remote_id:
            self._to_local.pop(old_remote, None)
        old_local = self._to_local.get(remote_id)
        if old_local is not None and old_local != local_id:
            self._to_remote.pop(old_local, None)
        self._to_remote[local_id] = remote_id
        self._to_local[remote_id] = local_id

    def update(self, pairs: Iterable[tuple[int, str]]) -> None:
        for local_id, remote_id in pairs:
            self.put(local_id, remote_id)

    def get_remote(self, local_id: int | None) -> str | None:
        if local_id is None:
            return None
        return self._to_remote.get(local_id)

    def get_local(self, remote_id: str | None) -> int | None:
        if not remote_id:
            return None
        return self._to_local.get(remote_id)

    def __contains__(self, local_id: object) -> bool:
        return local_id in self._to_remote

    def __len__(self) -> int:
        return len(self._to_remote)

    def __repr__(self) -> str:
        return f"IdTranslationTable({len(self)} entries)"
