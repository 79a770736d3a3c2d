from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict


class FactModel(BaseModel):
    """Base for every fact-side model: immutable, no extra keys."""

    model_config = ConfigDict(frozen=True, extra="forbid")


class ResourceMeta(FactModel):
    """Identity part of a resource as seen by the rule engine."""

    name: Optional[str] = None
    cluster_name: Optional[str] = None
    namespace: Optional[str] = None
    uid: Optional[str] = None  # not part of the upsert key


class WorkloadMeta(ResourceMeta):
    labels: Optional[Dict[str, str]] = None
