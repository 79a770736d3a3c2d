from __future__ import annotations

from collections import OrderedDict
from typing import Any, AsyncIterable, Callable, Dict, Mapping, Optional

from pydantic import BaseModel

from schemas.events import WatchEvent, WatchEventType
from schemas.facts import Fact
from schemas.transaction import CommitResult, FactUpdate
from services.errors import EngineFailure, StreamTerminated, TranslationSkip
from services.transaction_manager import TransactionManager
from utils.logger import get_logger

__all__ = ["WatchLoop", "WatchStats"]

logger = get_logger(__name__)

Translate = Callable[[Mapping[str, Any]], Fact]


class WatchStats(BaseModel):
    received: int = 0
    committed: int = 0
    skipped: int = 0  # translation failures
    failed: int = 0  # rejected transactions
    stale: int = 0  # older versions of an already committed object
    running: bool = False
    terminated_reason: Optional[str] = None


def _numeric_version(event: WatchEvent) -> Optional[int]:
    version = event.resource_version
    if isinstance(version, str) and version.isdigit():
        return int(version)
    return None


class WatchLoop:
    """Feeds one resource kind's change stream into the fact store.

    Each notification is translated and committed as a single-update batch.
    A bad notification or a failed transaction is logged and skipped; only a
    terminated stream ends the loop.

    With ``reject_stale`` the loop remembers the last committed numeric
    ``resourceVersion`` per identity and drops any event carrying a smaller
    one. A delete leaves its version behind as a tombstone, so a late
    snapshot can neither bring a deleted fact back nor can a late delete
    remove a newer fact. Only the newest ``max_tombstones`` tombstones are
    kept.
    """

    def __init__(
        self,
        name: str,
        stream: AsyncIterable[WatchEvent],
        translate: Translate,
        manager: TransactionManager,
        *,
        reject_stale: bool = True,
        max_tombstones: int = 10_000,
    ) -> None:
        self.name = name
        self.stream = stream
        self.translate = translate
        self.manager = manager
        self.reject_stale = reject_stale
        self.max_tombstones = max_tombstones
        self.stats = WatchStats()
        self._versions: Dict[str, int] = {}
        self._tombstones: OrderedDict[str, None] = OrderedDict()

    async def run(self) -> WatchStats:
        self.stats.running = True
        logger.info("[%s] watch loop started", self.name)
        try:
            async for event in self.stream:
                await self.handle(event)
        except StreamTerminated as exc:
            self.stats.terminated_reason = str(exc)
            logger.error("[%s] change stream terminated: %s", self.name, exc)
        else:
            self.stats.terminated_reason = "stream ended"
            logger.info("[%s] change stream ended", self.name)
        finally:
            self.stats.running = False
        return self.stats

    async def handle(self, event: WatchEvent) -> Optional[CommitResult]:
        self.stats.received += 1
        if event.type not in (
            WatchEventType.ADDED,
            WatchEventType.MODIFIED,
            WatchEventType.DELETED,
        ):
            logger.debug("[%s] ignoring %s event", self.name, event.type.value)
            return None

        try:
            fact = self.translate(event.object)
        except TranslationSkip as exc:
            self.stats.skipped += 1
            logger.warning(
                "[%s] dropping %s event: %s", self.name, event.type.value, exc
            )
            return None

        key = fact.identity.key()
        version = _numeric_version(event)
        if self._is_stale(key, version):
            self.stats.stale += 1
            logger.info(
                "[%s] ignoring stale version %s of %s (have %s)",
                self.name,
                version,
                key,
                self._versions[key],
            )
            return None

        if event.is_applied:
            logger.debug("[%s] applied: %s", self.name, event.name)
            update = FactUpdate.insert(fact)
        else:
            logger.debug("[%s] deleted: %s", self.name, event.name)
            update = FactUpdate.delete(fact)

        try:
            result = await self.manager.apply([update])
        except EngineFailure as exc:
            self.stats.failed += 1
            logger.error("[%s] transaction for %s failed: %s", self.name, key, exc)
            return None

        self.stats.committed += 1
        if version is not None:
            self._versions[key] = version
        self._tombstones.pop(key, None)
        if not event.is_applied:
            self._bury(key)
        return result

    def _is_stale(self, key: str, version: Optional[int]) -> bool:
        if not self.reject_stale or version is None:
            return False
        return key in self._versions and version < self._versions[key]

    def _bury(self, key: str) -> None:
        self._tombstones[key] = None
        while len(self._tombstones) > self.max_tombstones:
            oldest, _ = self._tombstones.popitem(last=False)
            self._versions.pop(oldest, None)
