from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional


@dataclass
class AggregationResult:
    """Outcome of one aggregation pass.

    ``committed`` is True only when the global model was replaced and the
    cycle's raw inputs were cleared.  ``skipped`` counts per-item rejections
    by reason (error class name).
    """

    cycle: int
    mode: str
    committed: bool = False
    aggregated: int = 0
    vector_length: Optional[int] = None
    skipped: Dict[str, int] = field(default_factory=dict)

    def record_skip(self, exc: Exception) -> None:
        reason = type(exc).__name__
        self.skipped[reason] = self.skipped.get(reason, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
