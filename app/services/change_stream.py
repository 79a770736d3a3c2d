"""Kubernetes list+watch as an async stream of :class:`WatchEvent`.

The stream first lists the collection (every item becomes an ``ADDED`` event,
like the initial state of a watcher) and then watches from the list's
``resourceVersion``. When the API server ends a watch call normally the
stream re-watches from the last version it saw (objects and bookmarks). An
expired version (HTTP 410 or an ``ERROR`` event with code 410) triggers a
fresh list. Objects that were known before the relist but are missing from the
fresh list get a synthetic ``DELETED`` event stamped with the list's
version; their real deletes fell into the expired gap. Anything else ends
the stream with :class:`StreamTerminated`; reconnect/backoff policy belongs to
the caller.
"""

from __future__ import annotations

import copy
import json
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx
from pydantic import ValidationError

from schemas.events import WatchEvent, WatchEventType
from services.errors import StreamTerminated
from utils.logger import get_logger

__all__ = ["KubeChangeStream", "pods_path", "nodes_path"]

logger = get_logger(__name__)


def pods_path(namespace: str) -> str:
    return f"/api/v1/namespaces/{namespace}/pods"


def nodes_path() -> str:
    return "/api/v1/nodes"


def _object_key(obj: Dict[str, Any]) -> str:
    meta = obj.get("metadata")
    if not isinstance(meta, dict):
        return ""
    return f"{meta.get('namespace') or ''}/{meta.get('name') or ''}"


class _Expired(Exception):
    pass


class KubeChangeStream:
    def __init__(
        self,
        client: httpx.AsyncClient,
        path: str,
        *,
        watch_timeout: int = 300,
    ) -> None:
        self.client = client
        self.path = path
        self.watch_timeout = watch_timeout
        self.resource_version: Optional[str] = None
        self._known: Dict[str, Dict[str, Any]] = {}

    def __aiter__(self) -> AsyncIterator[WatchEvent]:
        return self.events()

    async def events(self) -> AsyncIterator[WatchEvent]:
        self.resource_version = None
        self._known = {}
        needs_list = True
        try:
            while True:
                if needs_list:
                    self.resource_version, items = await self._list()
                    needs_list = False
                    logger.info(
                        "Listed %d object(s) from %s at version %s",
                        len(items),
                        self.path,
                        self.resource_version,
                    )
                    for event in self._vanished(items):
                        yield event
                    self._known = {_object_key(item): item for item in items}
                    for item in items:
                        yield WatchEvent(type=WatchEventType.ADDED, object=item)
                try:
                    async for event in self._watch():
                        self._remember(event)
                        yield event
                except _Expired:
                    logger.info(
                        "Version %s of %s expired, relisting",
                        self.resource_version,
                        self.path,
                    )
                    needs_list = True
        except httpx.HTTPError as exc:
            raise StreamTerminated(self.path, f"transport error: {exc}") from exc

    def _remember(self, event: WatchEvent) -> None:
        key = _object_key(event.object)
        if event.type is WatchEventType.DELETED:
            self._known.pop(key, None)
        else:
            self._known[key] = event.object

    def _vanished(self, items: List[Dict[str, Any]]) -> List[WatchEvent]:
        present = {_object_key(item) for item in items}
        gone = []
        for key, last in self._known.items():
            if key in present:
                continue
            obj = copy.deepcopy(last)
            meta = obj.get("metadata")
            if isinstance(meta, dict) and self.resource_version:
                meta["resourceVersion"] = self.resource_version
            gone.append(WatchEvent(type=WatchEventType.DELETED, object=obj))
        if gone:
            logger.info(
                "%d object(s) of %s disappeared while the watch was expired",
                len(gone),
                self.path,
            )
        return gone

    # ------------------------------------------------------------------ list
    async def _list(self) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        response = await self.client.get(self.path)
        if response.status_code >= 400:
            raise StreamTerminated(
                self.path, f"list failed with HTTP {response.status_code}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise StreamTerminated(self.path, "list returned invalid JSON") from exc
        items = body.get("items") or []
        version = (body.get("metadata") or {}).get("resourceVersion")
        return version, items

    # ----------------------------------------------------------------- watch
    async def _watch(self) -> AsyncIterator[WatchEvent]:
        params: Dict[str, Any] = {
            "watch": "true",
            "allowWatchBookmarks": "true",
            "timeoutSeconds": self.watch_timeout,
        }
        if self.resource_version:
            params["resourceVersion"] = self.resource_version
        timeout = httpx.Timeout(30.0, read=self.watch_timeout + 30.0)

        async with self.client.stream(
            "GET", self.path, params=params, timeout=timeout
        ) as response:
            if response.status_code == 410:
                raise _Expired()
            if response.status_code >= 400:
                await response.aread()
                raise StreamTerminated(
                    self.path, f"watch failed with HTTP {response.status_code}"
                )
            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                event = self._decode(line)
                if event.type is WatchEventType.ERROR:
                    code = event.object.get("code")
                    if code == 410:
                        raise _Expired()
                    raise StreamTerminated(
                        self.path,
                        f"watch error {code}: {event.object.get('message', '')}",
                    )
                if event.resource_version:
                    self.resource_version = event.resource_version
                if event.type is WatchEventType.BOOKMARK:
                    continue
                yield event

    def _decode(self, line: str) -> WatchEvent:
        try:
            return WatchEvent.model_validate(json.loads(line))
        except (ValueError, ValidationError) as exc:
            raise StreamTerminated(self.path, f"undecodable watch event: {exc}") from exc
