from __future__ import annotations

import logging
from typing import Protocol

from schemas.transaction import Delta
from utils.logger import get_logger


class DeltaSink(Protocol):
    def publish(self, delta: Delta) -> None: ...


class LoggingDeltaSink:
    """Writes every committed change to the log, one line per value."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or get_logger("delta")

    def publish(self, delta: Delta) -> None:
        for relation, changes in delta.items():
            if not changes:
                continue
            self.logger.info("Changes to relation %s", relation)
            for change in changes:
                self.logger.info("%s", change)
