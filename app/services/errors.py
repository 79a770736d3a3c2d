from __future__ import annotations

from typing import Optional


class TranslationSkip(Exception):
    """A notification could not be turned into a fact and is dropped."""

    def __init__(
        self, reason: str, *, kind: Optional[str] = None, name: Optional[str] = None
    ) -> None:
        self.reason = reason
        self.kind = kind
        self.name = name
        where = "/".join(p for p in (kind, name) if p)
        super().__init__(f"{where}: {reason}" if where else reason)


class EngineFailure(Exception):
    """The fact store rejected or failed a transaction; the batch is void."""


class StoreNotReady(EngineFailure):
    """The transaction manager has not been initialized yet."""


class StreamTerminated(Exception):
    """The resource change stream ended with an error."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")
