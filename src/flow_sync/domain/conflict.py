from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from flow_sync.domain.entities import TaskItem


DropReason = Literal["remote_newer", "deleted_before_upload"]


@dataclass(frozen=True)
class DroppedItem:
    list_key: str
    item: TaskItem
    reason: DropReason


@dataclass
class Reconciliation:
    """Disjoint per-list sets: what to persist from remote, what to upload."""

    remote_wins: dict[str, list[TaskItem]]
    to_upload: dict[str, list[TaskItem]]
    dropped: list[DroppedItem] = field(default_factory=list)

    def local_deletions(self) -> dict[str, list[TaskItem]]:
        out: dict[str, list[TaskItem]] = {}
        for d in self.dropped:
            if d.reason == "deleted_before_upload":
                out.setdefault(d.list_key, []).append(d.item)
        return out


def is_unsent_delete(item: TaskItem) -> bool:
    return item.deleted and not item.remote_id


class ConflictResolver:
    """Last-writer-wins at task granularity.

    The remote side only returns tasks modified since the last sync, so a task
    present in the remote set is newer on the server than our last view of it
    and beats the local edit. Lists are not resolved here: a dirty local list
    is always uploaded and wins.
    """

    def resolve(
        self,
        remote_wins: dict[str, list[TaskItem]],
        to_upload: dict[str, list[TaskItem]],
    ) -> Reconciliation:
        kept: dict[str, list[TaskItem]] = {}
        dropped: list[DroppedItem] = []

        for list_key, candidates in to_upload.items():
            remote_items = remote_wins.get(list_key, [])
            survivors: list[TaskItem] = []
            for item in candidates:
                if any(item.same_as(r) for r in remote_items):
                    dropped.append(DroppedItem(list_key, item, "remote_newer"))
                elif is_unsent_delete(item):
                    dropped.append(DroppedItem(list_key, item, "deleted_before_upload"))
                else:
                    survivors.append(item)
            if survivors:
                kept[list_key] = survivors

        return Reconciliation(
            remote_wins={k: list(v) for k, v in remote_wins.items()},
            to_upload=kept,
            dropped=dropped,
        )
