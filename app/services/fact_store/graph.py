from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from jinja2 import Environment

from schemas.facts import FACT_TYPES, Fact, Relation
from schemas.transaction import Delta, FactUpdate, UpdateKind
from services.fact_store import DeltaBuilder, canonical_json, fact_payload
from services.graph_proxy import GraphProxy
from utils.logger import get_logger

logger = get_logger(__name__)


class Neo4jFactStore:
    """Fact store persisted in Neo4j.

    Each relation is a node label (``WorkloadFact``, ``HostFact``); one node per
    identity, keyed by ``fact_key``, with the fact as canonical JSON in
    ``payload``. Updates of a transaction are staged in memory and sent on
    :meth:`commit` as one managed write transaction through :class:`GraphProxy`.
    Every statement returns the payload it replaced, from which the delta is
    computed.
    """

    def __init__(self, graph_proxy: GraphProxy, jinja_env: Environment) -> None:
        self.graph_proxy = graph_proxy
        self.jinja_env = jinja_env
        self._staged: Optional[List[FactUpdate]] = None

    def _render(self, template: str, relation: Relation) -> str:
        return self.jinja_env.get_template(template).render(label=relation.value)

    async def prepare(self) -> None:
        for relation in Relation:
            await self.graph_proxy.run_query(
                self._render("fact_constraint.j2", relation)
            )
        logger.info("Neo4j fact store constraints in place")

    async def begin_transaction(self) -> None:
        if self._staged is not None:
            raise RuntimeError("transaction already in progress")
        self._staged = []

    async def apply_updates(self, updates: Sequence[FactUpdate]) -> None:
        if self._staged is None:
            raise RuntimeError("no transaction in progress")
        self._staged.extend(updates)

    def _plan(
        self, update: FactUpdate
    ) -> Tuple[str, Dict[str, Any], Optional[Dict[str, Any]]]:
        identity = update.fact.identity
        params: Dict[str, Any] = {"key": identity.key()}
        if update.kind is UpdateKind.DELETE:
            return self._render("delete_fact.j2", update.relation), params, None
        payload = fact_payload(update.fact)
        meta = update.fact.metadata
        params.update(
            payload=canonical_json(payload),
            name=meta.name,
            namespace=meta.namespace,
            cluster_name=meta.cluster_name,
            uid=meta.uid,
        )
        return self._render("upsert_fact.j2", update.relation), params, payload

    async def commit(self) -> Delta:
        if self._staged is None:
            raise RuntimeError("no transaction in progress")
        staged, self._staged = self._staged, None

        plans = [self._plan(update) for update in staged]
        results = await self.graph_proxy.run_queries(
            [cypher for cypher, _, _ in plans], [params for _, params, _ in plans]
        )

        delta = DeltaBuilder()
        for update, (_, _, payload), records in zip(staged, plans, results):
            previous = records[0].get("previous") if records else None
            delta.replace(
                update.relation,
                json.loads(previous) if previous else None,
                payload,
            )
        return delta.build()

    async def rollback(self) -> None:
        # nothing reached the database before commit
        self._staged = None

    async def snapshot(self, relation: Relation) -> List[Fact]:
        records = await self.graph_proxy.run_query(
            self._render("list_facts.j2", relation), write=False
        )
        fact_type = FACT_TYPES[relation]
        return [fact_type.model_validate_json(r["payload"]) for r in records]

    async def close(self) -> None:
        self._staged = None
        await self.graph_proxy.close()
