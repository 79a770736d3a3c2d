"""Serialized, all-or-nothing access to the fact store.

The :class:`TransactionManager` owns the only handle to the store. Every
caller goes through :meth:`TransactionManager.apply`, which holds an
``asyncio.Lock`` for the whole begin/apply/commit sequence: batches never
interleave and commit order equals lock acquisition order (asyncio locks wake
waiters first-in first-out).

State of the handle::

    UNINITIALIZED -> INITIALIZING -> READY <-> COMMITTING

A failing batch is rolled back and reported as :class:`EngineFailure`; the
manager goes back to ``READY`` and keeps serving other callers.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from schemas.facts import Fact, Relation
from schemas.transaction import CommitResult, Delta, FactUpdate
from services.delta_sink import DeltaSink, LoggingDeltaSink
from services.errors import EngineFailure, StoreNotReady
from services.fact_store import FactStore
from utils.logger import get_logger

__all__ = ["StoreState", "TransactionManager"]

logger = get_logger(__name__)


class StoreState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    COMMITTING = "committing"


class TransactionManager:
    def __init__(self, store: FactStore, sink: Optional[DeltaSink] = None) -> None:
        self._store = store
        self._sink = sink or LoggingDeltaSink()
        self._lock = asyncio.Lock()
        self._state = StoreState.UNINITIALIZED
        self._commits = 0

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def commits(self) -> int:
        return self._commits

    # ----------------------------------------------------------- lifecycle --
    async def initialize(self, seed: Iterable[FactUpdate] = ()) -> CommitResult:
        """Prepare the store and commit the (possibly empty) seeding batch."""
        batch = list(seed)
        async with self._lock:
            if self._state is not StoreState.UNINITIALIZED:
                raise EngineFailure(f"fact store already {self._state.value}")
            self._state = StoreState.INITIALIZING
            try:
                await self._store.prepare()
                result = await self._transaction(batch)
            except EngineFailure:
                self._state = StoreState.UNINITIALIZED
                raise
            except Exception as exc:
                self._state = StoreState.UNINITIALIZED
                raise EngineFailure(f"fact store initialization failed: {exc}") from exc
            self._state = StoreState.READY
        logger.info("Fact store initialized (%d seed update(s))", len(batch))
        return result

    async def close(self) -> None:
        async with self._lock:
            await self._store.close()
            self._state = StoreState.UNINITIALIZED

    # ----------------------------------------------------------- public api --
    async def apply(self, updates: Sequence[FactUpdate]) -> CommitResult:
        """Commit ``updates`` in order as one atomic transaction.

        Raises
        ------
        StoreNotReady
            ``initialize`` has not completed.
        EngineFailure
            The store failed; nothing of the batch is visible.
        """
        batch = list(updates)
        async with self._lock:
            if self._state is not StoreState.READY:
                raise StoreNotReady(f"fact store is {self._state.value}")
            self._state = StoreState.COMMITTING
            try:
                return await self._transaction(batch)
            finally:
                self._state = StoreState.READY

    async def upsert(self, fact: Fact) -> CommitResult:
        return await self.apply([FactUpdate.insert(fact)])

    async def remove(self, fact: Fact) -> CommitResult:
        return await self.apply([FactUpdate.delete(fact)])

    async def snapshot(
        self, relation: Optional[Relation] = None
    ) -> Dict[Relation, List[Fact]]:
        """Current facts, read between commits so no partial batch is visible."""
        relations = [relation] if relation is not None else list(Relation)
        async with self._lock:
            if self._state is not StoreState.READY:
                raise StoreNotReady(f"fact store is {self._state.value}")
            try:
                return {r: await self._store.snapshot(r) for r in relations}
            except Exception as exc:
                raise EngineFailure(f"snapshot failed: {exc}") from exc

    # ------------------------------------------------------------- internals --
    async def _transaction(self, batch: List[FactUpdate]) -> CommitResult:
        try:
            await self._store.begin_transaction()
            await self._store.apply_updates(batch)
            logger.info("Committing %d update(s)", len(batch))
            delta = await self._store.commit()
        except asyncio.CancelledError:
            await self._rollback()
            raise
        except Exception as exc:
            await self._rollback()
            raise EngineFailure(
                f"transaction of {len(batch)} update(s) failed: {exc}"
            ) from exc

        self._commits += 1
        self._publish(delta)
        return CommitResult(sequence=self._commits, applied=len(batch), delta=delta)

    async def _rollback(self) -> None:
        try:
            await self._store.rollback()
        except Exception:
            logger.exception("Rollback failed, store state may be undefined")

    def _publish(self, delta: Delta) -> None:
        try:
            self._sink.publish(delta)
        except Exception:
            # the commit already happened; only the report is lost
            logger.exception("Delta sink failed")
