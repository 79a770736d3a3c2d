from __future__ import annotations

import asyncio
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional

import httpx

from config import AppSettings, app_settings
from schemas.transaction import FactUpdate
from services.fact_store import FactStore
from services.transaction_manager import TransactionManager
from services.watch_loop import WatchLoop, WatchStats
from utils.logger import get_logger

logger = get_logger(__name__)


class FactSyncService:
    """Owns the transaction manager and one running task per watch loop.

    Steps of :meth:`start`:

    1. **Initialization**: prepares the store and commits the seed batch via
       :meth:`TransactionManager.initialize`.
    2. **Watching**: spawns every :class:`WatchLoop` as its own task; loops
       share nothing but the manager.

    :meth:`stop` cancels the loops and releases the HTTP client and the store.
    """

    def __init__(
        self,
        manager: TransactionManager,
        loops: List[WatchLoop],
        *,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.manager = manager
        self.loops = loops
        self.client = client
        self._tasks: List[asyncio.Task[WatchStats]] = []

    async def start(self, seed: Iterable[FactUpdate] = ()) -> None:
        await self.manager.initialize(seed)
        self._tasks = [
            asyncio.create_task(loop.run(), name=f"watch-{loop.name}")
            for loop in self.loops
        ]
        logger.info("Started %d watch loop(s)", len(self._tasks))

    async def wait(self) -> List[WatchStats]:
        """Block until every loop has ended on its own."""
        return list(await asyncio.gather(*self._tasks))

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for loop, result in zip(self.loops, results):
            if isinstance(result, Exception):
                logger.error("[%s] watch loop crashed: %r", loop.name, result)
        self._tasks = []
        if self.client is not None:
            await self.client.aclose()
        await self.manager.close()
        logger.info("Fact sync stopped")

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.manager.state.value,
            "commits": self.manager.commits,
            "loops": {loop.name: loop.stats.model_dump() for loop in self.loops},
        }


def build_fact_store(settings: AppSettings) -> FactStore:
    if settings.FACT_STORE_BACKEND == "neo4j":
        from services.fact_store.graph import Neo4jFactStore
        from services.graph_proxy import get_graph_proxy
        from templates import env

        return Neo4jFactStore(get_graph_proxy(), env)

    from services.fact_store.memory import InMemoryFactStore

    return InMemoryFactStore()


@lru_cache(maxsize=1)
def get_fact_sync_service() -> FactSyncService:
    """Return a lazily created :class:`FactSyncService`."""
    from config.kube import connect_to_kube
    from services.change_stream import KubeChangeStream, nodes_path, pods_path
    from services.delta_sink import LoggingDeltaSink
    from services.translator import translate_host, translate_workload

    manager = TransactionManager(build_fact_store(app_settings), LoggingDeltaSink())
    client = connect_to_kube()
    timeout = app_settings.WATCH_TIMEOUT_SECONDS
    reject_stale = app_settings.REJECT_STALE_VERSIONS

    loops = [
        WatchLoop(
            "workloads",
            KubeChangeStream(
                client, pods_path(app_settings.NAMESPACE), watch_timeout=timeout
            ),
            translate_workload,
            manager,
            reject_stale=reject_stale,
        ),
        WatchLoop(
            "hosts",
            KubeChangeStream(client, nodes_path(), watch_timeout=timeout),
            translate_host,
            manager,
            reject_stale=reject_stale,
        ),
    ]
    return FactSyncService(manager, loops, client=client)
