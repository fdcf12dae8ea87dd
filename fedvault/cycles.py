"""Cycle counter and per-cycle participant snapshots."""

from __future__ import annotations

import logging
from typing import Dict, List

from .registry import ClientId, ClientRegistry

logger = logging.getLogger(__name__)


class CycleManager:
    """Monotonic cycle counter.

    ``advance()`` records which clients were registered at the moment the
    new cycle opened.  Snapshots are never rewritten, so a client that
    registers later is not a participant of that cycle even if it uploads
    to it.
    """

    def __init__(self, registry: ClientRegistry) -> None:
        self._registry = registry
        self._current = 0
        self._participants: Dict[int, List[ClientId]] = {}

    @property
    def current(self) -> int:
        return self._current

    def advance(self) -> int:
        self._current += 1
        self._participants[self._current] = self._registry.ids()
        logger.info(
            "Advanced to cycle %d with %d participant(s)",
            self._current,
            len(self._participants[self._current]),
        )
        return self._current

    def participants_of(self, cycle: int) -> List[ClientId]:
        """Snapshot for *cycle*, or every registered id if none was taken."""
        snapshot = self._participants.get(cycle)
        if snapshot is None:
            return self._registry.ids()
        return list(snapshot)

    def has_snapshot(self, cycle: int) -> bool:
        return cycle in self._participants
