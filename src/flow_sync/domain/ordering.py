"""Upload order for tasks of one list.

The remote service only accepts a parent/previous reference to a task it
already knows. Uploading in this order guarantees that, within one batch,
every task comes after its local parent and after its local previous sibling,
so their remote ids are in the id table by the time the dependent is sent.

Order key per task: (depth in the parent chain, index in the sibling chain,
local id). A parent is one level shallower than its children; a previous
sibling shares the depth and has a lower index.
"""

from __future__ import annotations

from collections.abc import Iterable

from flow_sync.domain.entities import TaskItem


def _chain_length(start: int | None, links: dict[int, int | None]) -> int:
    # Broken or cyclic chains stop counting instead of looping forever.
    length = 0
    seen: set[int] = set()
    current = start
    while current is not None and current in links and current not in seen:
        seen.add(current)
        length += 1
        current = links[current]
    return length


def upload_order(
    batch: Iterable[TaskItem], context: Iterable[TaskItem] | None = None
) -> list[TaskItem]:
    """Sort `batch` topologically by (parent depth, sibling order).

    `context` is every task of the list; depth and sibling index are computed
    over it so that references to tasks outside the batch still count.
    """
    items = list(batch)
    everyone = list(context) if context is not None else items
    by_id = {t.local_id: t for t in [*everyone, *items] if t.local_id is not None}

    parents = {local_id: t.local_parent for local_id, t in by_id.items()}
    previous = {local_id: t.local_previous for local_id, t in by_id.items()}

    def sort_key(task: TaskItem) -> tuple[int, int, int]:
        depth = _chain_length(task.local_parent, parents)
        index = _chain_length(task.local_previous, previous)
        return depth, index, task.local_id if task.local_id is not None else -1

    return sorted(items, key=sort_key)
