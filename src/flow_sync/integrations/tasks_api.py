"""Remote task service client.

The service speaks a Google-Tasks-shaped REST API: lists under
`/users/@me/lists`, tasks under `/lists/{list_id}/tasks`, a collection-level
`etag` that changes whenever any list or task changes, and HTTP 412 when an
`If-Match` precondition fails.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any, Protocol

import httpx

from flow_sync.domain.entities import TaskItem, TaskList
from flow_sync.errors import MalformedResponseError, RemoteAuthError, RemoteTransportError


logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str | None]]


@dataclass(frozen=True)
class RemoteLists:
    etag: str
    lists: list[TaskList]


class TasksAPI(Protocol):
    async def authenticate(self) -> bool: ...

    async def fetch_lists(self, local_etag: str, local_lists: list[TaskList]) -> RemoteLists: ...

    async def fetch_modified_items(
        self, task_list: TaskList, since: str | None
    ) -> list[TaskItem]: ...

    async def upload_list(
        self, task_list: TaskList, *, strict_conflicts: bool
    ) -> TaskList | None: ...

    async def upload_item(
        self, item: TaskItem, task_list: TaskList, *, strict_conflicts: bool
    ) -> TaskItem | None: ...

    async def fetch_etag(self) -> str: ...

    async def aclose(self) -> None: ...


def _require_str(obj: dict[str, Any], key: str, what: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str) or not value:
        raise MalformedResponseError(f"cannot parse {what} {key}: {obj}")
    return value


def _opt_str(obj: dict[str, Any], key: str) -> str | None:
    value = obj.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def _extract_items(data: dict[str, Any]) -> list[dict[str, Any]]:
    items = data.get("items", [])
    if items is None:
        return []
    if not isinstance(items, list):
        raise MalformedResponseError(f"'items' is not a list: {type(items).__name__}")
    return [x for x in items if isinstance(x, dict)]


def _parse_list(obj: dict[str, Any]) -> TaskList:
    return TaskList(
        title=str(obj.get("title") or ""),
        remote_id=_require_str(obj, "id", "task list"),
        deleted=bool(obj.get("deleted") or False),
        updated=_opt_str(obj, "updated"),
        etag=_opt_str(obj, "etag"),
    )


def _parse_item(obj: dict[str, Any]) -> TaskItem:
    return TaskItem(
        title=str(obj.get("title") or ""),
        remote_id=_require_str(obj, "id", "task"),
        notes=str(obj.get("notes") or ""),
        status=str(obj.get("status") or "needsAction"),
        due=_opt_str(obj, "due"),
        completed=_opt_str(obj, "completed"),
        deleted=bool(obj.get("deleted") or False),
        updated=_opt_str(obj, "updated"),
        etag=_opt_str(obj, "etag"),
        position=_opt_str(obj, "position"),
        remote_parent=_opt_str(obj, "parent"),
        remote_previous=_opt_str(obj, "previous"),
    )


def assign_previous_by_position(items: list[TaskItem]) -> None:
    """Fill `remote_previous` from sibling positions when the server omits it.

    Only meaningful on a complete download: with an `updatedMin` filter,
    unchanged siblings are missing and the chain would skip them.
    """
    siblings: dict[str | None, list[TaskItem]] = {}
    for item in items:
        if not item.deleted:
            siblings.setdefault(item.remote_parent, []).append(item)
    for group in siblings.values():
        group.sort(key=lambda t: t.position or "")
        prev_id: str | None = None
        for item in group:
            if item.remote_previous is None:
                item.remote_previous = prev_id
            prev_id = item.remote_id


def _item_body(item: TaskItem) -> dict[str, Any]:
    return {
        "title": item.title,
        "notes": item.notes,
        "status": item.status,
        "due": item.due,
        "completed": item.completed,
    }


def _position_params(item: TaskItem) -> dict[str, str]:
    params: dict[str, str] = {}
    if item.remote_parent:
        params["parent"] = item.remote_parent
    if item.remote_previous:
        params["previous"] = item.remote_previous
    return params


class HttpxTasksAPI:
    def __init__(
        self,
        *,
        base_url: str,
        bearer_token: str = "",
        token_provider: TokenProvider | None = None,
        timeout_seconds: float = 15.0,
        page_size: int = 100,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token = bearer_token.strip()
        self._token_provider = token_provider
        self._timeout = timeout_seconds
        self._page_size = page_size
        self._client = client
        self._owns_client = client is None

    async def authenticate(self) -> bool:
        if self._token_provider is not None:
            try:
                token = await self._token_provider()
            except RemoteAuthError as e:
                logger.info("token provider refused credentials: %s", e)
                return False
            self._token = (token or "").strip()
        if not self._token:
            return False
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return True

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        if not self._token:
            raise RemoteAuthError("tasks api bearer token is empty")
        headers = {"Authorization": f"Bearer {self._token}"}
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        if self._client is None:
            raise RemoteAuthError("not authenticated")
        url = f"{self._base_url}{path}"
        try:
            resp = await self._client.request(
                method, url, headers=self._headers(headers), params=params, json=json
            )
        except httpx.TransportError as e:
            raise RemoteTransportError(f"{method} {path} failed: {e}") from e
        if resp.status_code in (401, 403):
            raise RemoteAuthError(f"{method} {path} rejected. {resp.status_code} {resp.text}")
        return resp

    @staticmethod
    def _check(resp: httpx.Response, what: str) -> None:
        if not 200 <= resp.status_code < 300:
            raise RemoteTransportError(f"{what} failed. {resp.status_code} {resp.text}")

    @staticmethod
    def _json(resp: httpx.Response, what: str) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as e:
            raise MalformedResponseError(f"{what}: response is not JSON") from e
        if not isinstance(data, dict):
            raise MalformedResponseError(f"{what}: expected object, got {type(data).__name__}")
        return data

    async def _get_all_pages(
        self, path: str, params: dict[str, Any], what: str
    ) -> tuple[str, list[dict[str, Any]]]:
        etag = ""
        out: list[dict[str, Any]] = []
        page_token: str | None = None
        while True:
            page_params = dict(params)
            if page_token:
                page_params["pageToken"] = page_token
            resp = await self._request("GET", path, params=page_params)
            self._check(resp, what)
            data = self._json(resp, what)
            if not etag:
                etag = str(data.get("etag") or resp.headers.get("etag") or "")
            out.extend(_extract_items(data))
            page_token = _opt_str(data, "nextPageToken")
            if not page_token:
                return etag, out

    async def fetch_lists(self, local_etag: str, local_lists: list[TaskList]) -> RemoteLists:
        etag, raw = await self._get_all_pages(
            "/users/@me/lists", {"maxResults": self._page_size}, "list task lists"
        )
        lists = [_parse_list(x) for x in raw]

        # Lists we synced before that the server no longer reports were deleted remotely.
        seen = {lst.remote_id for lst in lists}
        for local in local_lists:
            if local.remote_id and local.remote_id not in seen:
                lists.append(
                    TaskList(
                        title=local.title,
                        local_id=local.local_id,
                        remote_id=local.remote_id,
                        deleted=True,
                    )
                )
        logger.debug(
            "fetched %d remote lists etag=%s (local etag=%s)", len(lists), etag, local_etag
        )
        return RemoteLists(etag=etag, lists=lists)

    async def fetch_modified_items(self, task_list: TaskList, since: str | None) -> list[TaskItem]:
        if not task_list.remote_id:
            return []
        params: dict[str, Any] = {
            "showDeleted": "true",
            "showHidden": "true",
            "maxResults": self._page_size,
        }
        if since:
            params["updatedMin"] = since
        _, raw = await self._get_all_pages(
            f"/lists/{task_list.remote_id}/tasks", params, "list tasks"
        )
        items = [_parse_item(x) for x in raw]
        if since is None:
            assign_previous_by_position(items)
        return items

    async def fetch_etag(self) -> str:
        resp = await self._request("GET", "/users/@me/lists", params={"maxResults": 1})
        self._check(resp, "fetch etag")
        data = self._json(resp, "fetch etag")
        return str(data.get("etag") or resp.headers.get("etag") or "")

    async def upload_list(
        self, task_list: TaskList, *, strict_conflicts: bool
    ) -> TaskList | None:
        """Create, rename or delete `task_list` on the server.

        Only strict mode sends `If-Match`; a full sync lets the local edit win.
        """
        if task_list.remote_id is None:
            resp = await self._request(
                "POST", "/users/@me/lists", json={"title": task_list.title}
            )
        elif task_list.deleted:
            resp = await self._request("DELETE", f"/users/@me/lists/{task_list.remote_id}")
            if resp.status_code == 404 or 200 <= resp.status_code < 300:
                return replace(task_list, deleted=True, dirty=False)
        else:
            headers = (
                {"If-Match": task_list.etag} if strict_conflicts and task_list.etag else None
            )
            resp = await self._request(
                "PATCH",
                f"/users/@me/lists/{task_list.remote_id}",
                json={"title": task_list.title},
                headers=headers,
            )
        if resp.status_code in (404, 412):
            logger.info(
                "list upload conflict remote_id=%s status=%s",
                task_list.remote_id,
                resp.status_code,
            )
            return None
        self._check(resp, "upload task list")
        result = _parse_list(self._json(resp, "upload task list"))
        result.local_id = task_list.local_id
        return result

    async def upload_item(
        self, item: TaskItem, task_list: TaskList, *, strict_conflicts: bool
    ) -> TaskItem | None:
        if not task_list.remote_id:
            raise ValueError("cannot upload a task into a list without remote id")
        base = f"/lists/{task_list.remote_id}/tasks"
        headers = {"If-Match": item.etag} if strict_conflicts and item.etag else None

        if item.deleted:
            if not item.remote_id:
                raise ValueError("task deleted before its first upload must not be sent")
            resp = await self._request("DELETE", f"{base}/{item.remote_id}", headers=headers)
            if resp.status_code == 412:
                return None
            if resp.status_code != 404:
                self._check(resp, "delete task")
            return replace(item, deleted=True, dirty=False)

        if item.remote_id is None:
            resp = await self._request(
                "POST", base, params=_position_params(item), json=_item_body(item)
            )
            self._check(resp, "create task")
        else:
            resp = await self._request(
                "PATCH", f"{base}/{item.remote_id}", json=_item_body(item), headers=headers
            )
            if resp.status_code in (404, 412):
                logger.info(
                    "task upload conflict remote_id=%s status=%s",
                    item.remote_id,
                    resp.status_code,
                )
                return None
            self._check(resp, "update task")
            resp = await self._request(
                "POST", f"{base}/{item.remote_id}/move", params=_position_params(item)
            )
            self._check(resp, "move task")

        result = _parse_item(self._json(resp, "upload task"))
        result.local_id = item.local_id
        result.list_id = item.list_id
        result.local_parent = item.local_parent
        result.local_previous = item.local_previous
        if result.remote_parent is None:
            result.remote_parent = item.remote_parent
        if result.remote_previous is None:
            result.remote_previous = item.remote_previous
        return result
