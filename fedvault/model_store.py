"""Single-valued store for the serialized global model."""

from __future__ import annotations

from typing import List, Sequence

from .codec import decode_vector, encode_vector


class GlobalModelStore:
    """Holds the latest aggregate; overwritten in place, no history."""

    def __init__(self) -> None:
        self._serialized = b""

    def get(self) -> bytes:
        return self._serialized

    def replace(self, values: Sequence[float]) -> bytes:
        self._serialized = encode_vector(values)
        return self._serialized

    def values(self) -> List[float]:
        """Decoded view of the current model (empty if never aggregated)."""
        if not self._serialized:
            return []
        return decode_vector(self._serialized)
