from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from schemas.facts import Fact, Relation
from schemas.transaction import Delta, FactUpdate, UpdateKind
from services.fact_store import DeltaBuilder, fact_payload
from utils.logger import get_logger

logger = get_logger(__name__)

Rows = Dict[Relation, Dict[str, Fact]]


class InMemoryFactStore:
    """Reference engine that keeps every relation in process memory.

    A transaction works on a staged copy of the relations that replaces the
    committed state only on :meth:`commit`, so a failed or rolled back batch
    leaves no trace.
    """

    def __init__(self) -> None:
        self._rows: Rows = {relation: {} for relation in Relation}
        self._staged: Optional[Rows] = None
        self._delta: Optional[DeltaBuilder] = None

    async def prepare(self) -> None:
        logger.debug("In-memory fact store ready (%d relations)", len(self._rows))

    async def begin_transaction(self) -> None:
        if self._staged is not None:
            raise RuntimeError("transaction already in progress")
        self._staged = {relation: dict(rows) for relation, rows in self._rows.items()}
        self._delta = DeltaBuilder()

    async def apply_updates(self, updates: Sequence[FactUpdate]) -> None:
        staged, delta = self._require_transaction()
        for update in updates:
            rows = staged[update.relation]
            key = update.fact.identity.key()
            old = rows.get(key)
            if update.kind is UpdateKind.INSERT:
                rows[key] = update.fact
                delta.replace(
                    update.relation,
                    fact_payload(old) if old is not None else None,
                    fact_payload(update.fact),
                )
            elif old is not None:
                del rows[key]
                delta.add(update.relation, fact_payload(old), -1)

    async def commit(self) -> Delta:
        staged, delta = self._require_transaction()
        self._rows = staged
        self._staged = None
        self._delta = None
        return delta.build()

    async def rollback(self) -> None:
        self._staged = None
        self._delta = None

    async def snapshot(self, relation: Relation) -> List[Fact]:
        return list(self._rows[relation].values())

    async def close(self) -> None:
        await self.rollback()

    def _require_transaction(self) -> tuple[Rows, DeltaBuilder]:
        if self._staged is None or self._delta is None:
            raise RuntimeError("no transaction in progress")
        return self._staged, self._delta
