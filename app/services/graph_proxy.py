from __future__ import annotations

"""Asynchronous helper around the Neo4j driver.

`GraphProxy` exposes :meth:`run_query` for a single Cypher statement and
:meth:`run_queries` for a batch executed in *one* write transaction. The batch
form returns the records of every statement separately so callers can pair
each statement with its own result. Both rely on managed transactions, so the
driver retries transient failures; a failing statement rolls the whole batch
back.
"""

from contextlib import AbstractAsyncContextManager
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional

from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncManagedTransaction

from config import app_settings
from utils.logger import get_logger

__all__ = ["GraphProxy", "get_graph_proxy"]

logger = get_logger(__name__)

Records = List[Dict[str, Any]]


class GraphProxy(AbstractAsyncContextManager):
    """Thin wrapper over :class:`neo4j.AsyncDriver` used by the Neo4j fact store.

    May be used as an async context manager; leaving the ``async with`` block
    closes the driver.
    """

    def __init__(
        self,
        uri: str,
        user: str,
        password: str,
        database: str | None = None,
    ) -> None:
        self._driver: AsyncDriver = AsyncGraphDatabase.driver(
            uri, auth=(user, password)
        )
        self._database = database

    # ------------------------------------------------------------------ utils
    @staticmethod
    async def _run(
        tx: AsyncManagedTransaction, cypher: str, params: Optional[Dict[str, Any]]
    ) -> Records:
        result = await tx.run(cypher, params or {})
        return [record.data() async for record in result]

    def _log(self, cypher: str, params: Optional[Dict[str, Any]]) -> None:
        if app_settings.DEBUG:
            logger.debug("cypher=%s params=%s", cypher, params)

    # ----------------------------------------------------------- public api --
    async def run_query(
        self,
        cypher: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        write: bool = True,
    ) -> Records:
        """Execute a single statement and return its records as dicts."""
        self._log(cypher, params)
        async with self._driver.session(database=self._database) as session:
            fn = session.execute_write if write else session.execute_read
            return await fn(self._run, cypher, params)

    async def run_queries(
        self,
        cyphers: Iterable[str],
        params_list: Optional[Iterable[Optional[Dict[str, Any]]]] = None,
        *,
        write: bool = True,
    ) -> List[Records]:
        """Execute several statements sequentially in a single transaction.

        ``params_list`` must be as long as ``cyphers`` or ``None``. The return
        value holds one record list per statement, in statement order.
        """
        cypher_list = list(cyphers)
        params = list(params_list or [None] * len(cypher_list))
        if len(cypher_list) != len(params):
            raise ValueError("params_list length mismatch with cyphers")
        if not cypher_list:
            return []

        async def batch_tx(tx: AsyncManagedTransaction) -> List[Records]:
            results: List[Records] = []
            for c, p in zip(cypher_list, params):
                self._log(c, p)
                results.append(await self._run(tx, c, p))
            return results

        async with self._driver.session(database=self._database) as session:
            fn = session.execute_write if write else session.execute_read
            return await fn(batch_tx)

    # -------------------------------------------------------------- cleanup --
    async def close(self) -> None:
        await self._driver.close()

    # -------------------------------------------------------- context-manager --
    async def __aenter__(self):  # noqa: D401
        return self

    async def __aexit__(self, exc_type, exc, tb):  # noqa: D401
        await self.close()


@lru_cache()
def get_graph_proxy() -> GraphProxy:
    """Create and cache a GraphProxy instance."""
    return GraphProxy(
        uri=app_settings.NEO4J_URI,
        user=app_settings.NEO4J_USER,
        password=app_settings.NEO4J_PASSWORD,
        database=app_settings.NEO4J_DB,
    )
