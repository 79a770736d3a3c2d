from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny

from schemas.facts import Fact, Relation


class UpdateKind(str, Enum):
    INSERT = "insert"
    DELETE = "delete"


class FactUpdate(BaseModel):
    """One command of a batch; the relation comes from the fact type."""

    model_config = ConfigDict(frozen=True)

    kind: UpdateKind
    fact: SerializeAsAny[Fact]

    @property
    def relation(self) -> Relation:
        return self.fact.relation

    @classmethod
    def insert(cls, fact: Fact) -> "FactUpdate":
        return cls(kind=UpdateKind.INSERT, fact=fact)

    @classmethod
    def delete(cls, fact: Fact) -> "FactUpdate":
        return cls(kind=UpdateKind.DELETE, fact=fact)


class Change(BaseModel):
    """A value of an output relation plus its signed multiplicity."""

    value: Dict[str, Any]
    weight: int

    def __str__(self) -> str:
        return f"{self.value} {self.weight:+d}"


# relation name -> consolidated changes of one commit
Delta = Dict[str, List[Change]]


class CommitResult(BaseModel):
    sequence: int  # 1-based commit counter of the manager
    applied: int  # number of updates in the batch
    delta: Delta = Field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return any(self.delta.values())
