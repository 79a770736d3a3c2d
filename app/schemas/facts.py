from __future__ import annotations

from enum import Enum
from typing import ClassVar, Dict, NamedTuple, Optional, Type

from schemas.affinity import Affinity
from schemas.metadata import FactModel, ResourceMeta, WorkloadMeta


class Relation(str, Enum):
    """Input relation tag agreed with the rule engine, one per fact kind."""

    WORKLOAD = "WorkloadFact"
    HOST = "HostFact"


class FactIdentity(NamedTuple):
    relation: Relation
    cluster_name: Optional[str]
    namespace: Optional[str]
    name: Optional[str]

    def key(self) -> str:
        """Stable string form, used as the store key."""
        parts = [self.cluster_name or "", self.namespace or "", self.name or ""]
        return f"{self.relation.value}:" + "/".join(parts)


class Fact(FactModel):
    relation: ClassVar[Relation]
    metadata: ResourceMeta

    @property
    def identity(self) -> FactIdentity:
        return FactIdentity(
            self.relation,
            self.metadata.cluster_name,
            self.metadata.namespace,
            self.metadata.name,
        )


class WorkloadSpec(FactModel):
    node_name: Optional[str] = None
    affinity: Optional[Affinity] = None


class WorkloadFact(Fact):
    """A pod as an input fact."""

    relation: ClassVar[Relation] = Relation.WORKLOAD
    metadata: WorkloadMeta = WorkloadMeta()
    spec: WorkloadSpec = WorkloadSpec()


class HostSpec(FactModel):
    pod_cidr: Optional[str] = None


class HostFact(Fact):
    """A node as an input fact."""

    relation: ClassVar[Relation] = Relation.HOST
    metadata: ResourceMeta = ResourceMeta()
    spec: HostSpec = HostSpec()


FACT_TYPES: Dict[Relation, Type[Fact]] = {
    Relation.WORKLOAD: WorkloadFact,
    Relation.HOST: HostFact,
}
