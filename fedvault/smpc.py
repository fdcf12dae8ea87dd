"""Mask-cancellation aggregation for pairwise-masked SMPC inputs.

Client ``i`` uploads ``s_i = round(g_i * 1e6) - sum_j r_ij`` and, separately,
``t_i = sum_j r_ji`` (the masks its peers aimed at it).  Summed over everyone
the masks cancel::

    sum_i s_i + sum_i t_i = sum_i round(g_i * 1e6)

so the service only ever learns the aggregate.  Whether the masks were
generated honestly is not checked here.

The whole pass runs under the state lock and has no suspension points.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Sequence, Tuple

from .codec import SMPC_SCALE, to_f32
from .errors import VectorLengthMismatch
from .registry import ClientId
from .results import AggregationResult
from .state import AggregationMode, AggregatorState

logger = logging.getLogger(__name__)


def _ordered(vectors: Dict[ClientId, List[int]]) -> List[Tuple[ClientId, List[int]]]:
    return [(cid, vectors[cid]) for cid in sorted(vectors)]


def _accumulate(
    vectors: Sequence[Tuple[ClientId, List[int]]],
    vec_len: int,
    result: AggregationResult,
    kind: str,
) -> Tuple[List[int], int]:
    """Element-wise sum of the vectors of length *vec_len*; others are skipped.

    Python ints do not overflow, so the sums are exact however many
    near-``i64`` values are added.
    """
    sums = [0] * vec_len
    used = 0
    for client_id, vector in vectors:
        if len(vector) != vec_len:
            exc = VectorLengthMismatch(
                f"{kind} from client {client_id} has {len(vector)} elements, expected {vec_len}"
            )
            logger.warning("Skipping %s", exc)
            result.record_skip(exc)
            continue
        for i, value in enumerate(vector):
            sums[i] += value
        used += 1
    return sums, used


class SMPCAggregationEngine:
    def __init__(self, state: AggregatorState, *, scale: int = SMPC_SCALE) -> None:
        self.state = state
        self.scale = scale

    def run(self) -> AggregationResult:
        with self.state.transaction() as st:
            cycle = st.current_cycle
            result = AggregationResult(cycle=cycle, mode=AggregationMode.SMPC.value)

            shares = _ordered(st.smpc_s_shares.get(cycle, {}))
            sums = _ordered(st.smpc_t_sums.get(cycle, {}))
            if not shares or not sums:
                logger.debug("Missing SMPC inputs for cycle %d, nothing to aggregate", cycle)
                return result

            # Length comes from the lowest ClientId's masked share.
            vec_len = len(shares[0][1])

            sum_s, num_s = _accumulate(shares, vec_len, result, "masked share")
            sum_t, _ = _accumulate(sums, vec_len, result, "mask sum")
            if num_s == 0:
                return result

            averaged = [
                to_f32(float(s + t) / num_s / self.scale) for s, t in zip(sum_s, sum_t)
            ]
            st.model.replace(averaged)
            st.smpc_s_shares.pop(cycle, None)
            st.smpc_t_sums.pop(cycle, None)

        result.committed = True
        result.aggregated = num_s
        result.vector_length = vec_len
        logger.info(
            "Reconstructed SMPC aggregate of %d share(s) for cycle %d (length %d)",
            num_s,
            cycle,
            vec_len,
        )
        return result
