from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from leadwatch.models import RawRecord


class Source(ABC):
    """Yields one batch of raw article records per scan cycle.

    ``open`` and ``close`` bracket the time the watcher spends inside its
    operating window; ``fetch`` raises ``SourceError`` when a cycle cannot
    produce records.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self.logger = logging.getLogger(f"leadwatch.sources.{name}")
        self._opened = False

    @property
    def is_open(self) -> bool:
        return self._opened

    def open(self) -> None:
        self._opened = True

    def close(self) -> None:
        self._opened = False

    @abstractmethod
    def fetch(self) -> list[RawRecord]:
        raise NotImplementedError
