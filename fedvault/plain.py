"""Decrypt-and-average aggregation over per-client AES-GCM updates.

One pass over the current cycle:

1. Snapshot ``(cycle, updates, client list)`` under the state lock.
2. For each client in ascending ClientId order, derive its key through the
   gateway (a suspension point), open the envelope and decode the vector.
3. Average the accepted vectors and, if there was at least one, replace the
   global model and drop the cycle's updates.

Per-item problems are split into two classes.  A short envelope, a failed
tag check or a vector of the wrong length only skips that client.  An
unknown ClientId, a key-service failure, unusable key material or (by
default) an undecodable plaintext abort the whole pass, discarding whatever
was accumulated; the shared state is only written in step 3.
"""

from __future__ import annotations

import logging
from typing import List

from .codec import aead_for_key, decode_vector, open_envelope, to_f32
from .errors import (
    DeserializationFailed,
    RecoverableError,
    UnknownClientId,
    VectorLengthMismatch,
)
from .keys import KeyDerivationGateway
from .registry import ClientId, ClientIdentity, identity_bytes
from .results import AggregationResult
from .state import AggregationMode, AggregatorState

logger = logging.getLogger(__name__)


class PlainAggregationEngine:
    def __init__(
        self,
        state: AggregatorState,
        gateway: KeyDerivationGateway,
        *,
        abort_on_undecodable_update: bool = True,
    ) -> None:
        self.state = state
        self.gateway = gateway
        self.abort_on_undecodable_update = abort_on_undecodable_update

    def _revalidate(self, client_id: ClientId, identity: ClientIdentity) -> None:
        """Check the cached id -> identity binding still holds after a suspension."""
        with self.state.transaction() as st:
            current = st.registry.identity_of(client_id)
        if identity_bytes(current) != identity_bytes(identity):
            raise UnknownClientId(
                f"Client {client_id} was rebound while aggregation was suspended"
            )

    async def run(self) -> AggregationResult:
        with self.state.transaction() as st:
            cycle = st.current_cycle
            updates = dict(st.model_updates.get(cycle, {}))
            clients = st.registry.snapshot()

        result = AggregationResult(cycle=cycle, mode=AggregationMode.PLAIN.value)
        if not updates:
            logger.debug("No updates for cycle %d, nothing to aggregate", cycle)
            return result

        totals: List[float] = []
        count = 0

        for client_id in sorted(updates):
            if client_id >= len(clients):
                raise UnknownClientId(f"Client principal not found for id {client_id}")
            identity = clients[client_id]

            key = await self.gateway.derive_update_key(identity)
            self._revalidate(client_id, identity)
            aesgcm = aead_for_key(key)

            try:
                vector = decode_vector(open_envelope(updates[client_id], aesgcm))
                if not totals:
                    # An empty running sum takes its length from the next vector.
                    totals = [0.0] * len(vector)
                elif len(vector) != len(totals):
                    raise VectorLengthMismatch(
                        f"expected {len(totals)} elements, got {len(vector)}"
                    )
            except DeserializationFailed as exc:
                if self.abort_on_undecodable_update:
                    logger.warning(
                        "Aborting aggregation of cycle %d: client %d sent an undecodable update",
                        cycle,
                        client_id,
                    )
                    raise
                logger.warning("Skipping client %d in cycle %d: %s", client_id, cycle, exc)
                result.record_skip(exc)
                continue
            except RecoverableError as exc:
                logger.warning("Skipping client %d in cycle %d: %s", client_id, cycle, exc)
                result.record_skip(exc)
                continue

            for i, value in enumerate(vector):
                totals[i] += value
            count += 1

        if count == 0:
            logger.info("No usable updates in cycle %d; keeping them for a retry", cycle)
            return result

        mean = [to_f32(total / count) for total in totals]
        with self.state.transaction() as st:
            st.model.replace(mean)
            st.model_updates.pop(cycle, None)

        result.committed = True
        result.aggregated = count
        result.vector_length = len(totals)
        logger.info(
            "Aggregated %d update(s) for cycle %d (length %d)", count, cycle, len(totals)
        )
        return result
