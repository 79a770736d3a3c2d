from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class WatchEventType(str, Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    BOOKMARK = "BOOKMARK"
    ERROR = "ERROR"


class WatchEvent(BaseModel):
    """A single notification of the Kubernetes watch protocol.

    ``object`` is the full current state of the resource (not a diff), kept as
    the raw JSON mapping so the translator sees exactly what the API sent.
    """

    type: WatchEventType
    object: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_applied(self) -> bool:
        return self.type in (WatchEventType.ADDED, WatchEventType.MODIFIED)

    @property
    def resource_version(self) -> Optional[str]:
        meta = self.object.get("metadata")
        if isinstance(meta, dict):
            return meta.get("resourceVersion")
        return None

    @property
    def name(self) -> Optional[str]:
        meta = self.object.get("metadata")
        if isinstance(meta, dict):
            return meta.get("name")
        return None
