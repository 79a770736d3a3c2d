from __future__ import annotations

from typing import Any, Dict, List

from pydantic import Field

from fastapi_camelcase import CamelModel


class LoopStatusOut(CamelModel):
    """Counters of a single watch loop."""

    received: int = Field(0, description="Notifications read from the stream")
    committed: int = Field(0, description="Notifications committed to the store")
    skipped: int = Field(0, description="Notifications the translator rejected")
    failed: int = Field(0, description="Transactions rejected by the store")
    stale: int = Field(0, description="Older versions of committed objects")
    running: bool = False
    terminated_reason: str | None = Field(
        None, description="Why the change stream ended, if it did"
    )


class StateOut(CamelModel):
    state: str = Field(..., description="Fact store handle state")
    commits: int = Field(..., description="Transactions committed so far")
    loops: Dict[str, LoopStatusOut] = Field(default_factory=dict)


class FactsOut(CamelModel):
    relation: str
    count: int
    facts: List[Dict[str, Any]] = Field(
        default_factory=list, description="Facts as stored, absent fields omitted"
    )
