"""The one shared mutable state instance behind every operation.

All mutation goes through :meth:`AggregatorState.transaction`, which holds a
re-entrant lock.  Synchronous operations hold it for their whole duration, so
they never interleave.  The plain aggregation pass suspends on key-service
calls and therefore only holds it for its opening snapshot and its final
commit; anything may happen in between.
"""

from __future__ import annotations

import enum
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List

from .cycles import CycleManager
from .model_store import GlobalModelStore
from .registry import ClientId, ClientRegistry


class AggregationMode(enum.Enum):
    """Informational flag; does not gate which pipeline may be invoked."""

    PLAIN = "PLAIN"
    SMPC = "SMPC"

    @classmethod
    def parse(cls, value: str) -> "AggregationMode":
        """``"smpc"`` in any ASCII case selects SMPC; every other string is PLAIN."""
        if value.isascii() and value.upper() == cls.SMPC.value:
            return cls.SMPC
        return cls.PLAIN


# cycle -> ClientId -> payload
CycleMap = Dict[int, Dict[ClientId, bytes]]
VectorMap = Dict[int, Dict[ClientId, List[int]]]


@dataclass
class AggregatorState:
    registry: ClientRegistry = field(default_factory=ClientRegistry)
    model: GlobalModelStore = field(default_factory=GlobalModelStore)
    mode: AggregationMode = AggregationMode.PLAIN
    model_updates: CycleMap = field(default_factory=dict)
    smpc_s_shares: VectorMap = field(default_factory=dict)
    smpc_t_sums: VectorMap = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.cycles = CycleManager(self.registry)
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Iterator["AggregatorState"]:
        with self._lock:
            yield self

    @property
    def current_cycle(self) -> int:
        return self.cycles.current
