"""Fact store engines.

A fact store is the transactional side of the rule engine: it holds one
relation per fact kind, keeps at most one fact per identity (upsert) and, on
commit, reports the consolidated changes of the transaction.

Engines are driven exclusively by :class:`services.transaction_manager.TransactionManager`,
which guarantees that ``begin_transaction`` / ``apply_updates`` / ``commit``
(or ``rollback``) are never interleaved between callers.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Protocol, Sequence, Tuple

from schemas.facts import Fact, Relation
from schemas.transaction import Change, Delta, FactUpdate


class FactStore(Protocol):
    async def prepare(self) -> None: ...

    async def begin_transaction(self) -> None: ...

    async def apply_updates(self, updates: Sequence[FactUpdate]) -> None: ...

    async def commit(self) -> Delta: ...

    async def rollback(self) -> None: ...

    async def snapshot(self, relation: Relation) -> List[Fact]: ...

    async def close(self) -> None: ...


def fact_payload(fact: Fact) -> Dict[str, Any]:
    """JSON form of a fact; absent fields are left out."""
    return fact.model_dump(mode="json", exclude_none=True)


def canonical_json(value: Dict[str, Any]) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


class DeltaBuilder:
    """Accumulates signed changes and drops the ones that cancel out."""

    def __init__(self) -> None:
        self._weights: Dict[Tuple[str, str], int] = {}
        self._values: Dict[Tuple[str, str], Dict[str, Any]] = {}

    def add(self, relation: Relation, value: Dict[str, Any], weight: int) -> None:
        slot = (relation.value, canonical_json(value))
        self._values.setdefault(slot, value)
        self._weights[slot] = self._weights.get(slot, 0) + weight

    def replace(
        self, relation: Relation, old: Dict[str, Any] | None, new: Dict[str, Any] | None
    ) -> None:
        if old is not None and new is not None and canonical_json(old) == canonical_json(new):
            return
        if old is not None:
            self.add(relation, old, -1)
        if new is not None:
            self.add(relation, new, +1)

    def build(self) -> Delta:
        delta: Delta = {}
        for slot, weight in self._weights.items():
            if weight == 0:
                continue
            delta.setdefault(slot[0], []).append(
                Change(value=self._values[slot], weight=weight)
            )
        return delta


__all__ = ["FactStore", "DeltaBuilder", "fact_payload", "canonical_json"]
