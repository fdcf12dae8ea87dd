"""Public operations of the aggregation service.

:class:`FederatedAggregator` is the single entry point used by the HTTP
surface, the CLI and embedding code.  Caller identities arrive already
authenticated; the aggregator only maps them to ClientIds.

The aggregation mode is informational: both upload families and both
aggregation pipelines are always reachable, whatever the mode says.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from .codec import validate_fixed_point
from .config import Settings
from .keys import (
    HttpKeyDerivationService,
    KeyDerivationGateway,
    KeyDerivationService,
    KeyId,
    LocalKeyDerivationService,
)
from .plain import PlainAggregationEngine
from .registry import ClientId, ClientIdentity
from .results import AggregationResult
from .smpc import SMPCAggregationEngine
from .state import AggregationMode, AggregatorState

logger = logging.getLogger(__name__)


def build_gateway(settings: Settings) -> KeyDerivationGateway:
    """Pick the key-service backend described by *settings*."""
    service: KeyDerivationService
    if settings.key_service_url:
        token = settings.key_service_token
        service = HttpKeyDerivationService(
            settings.key_service_url,
            auth_token_provider=(lambda: token) if token else None,
            timeout=settings.key_service_timeout,
        )
        logger.info("Using key derivation service at %s", settings.key_service_url)
    else:
        service = LocalKeyDerivationService(settings.master_secret_bytes)
        logger.info("Using in-process key derivation")
    return KeyDerivationGateway(
        service,
        key_id=KeyId(curve=settings.key_curve, name=settings.key_name),
        label=settings.derivation_label.encode("utf-8"),
    )


class FederatedAggregator:
    """Aggregation engine over one shared :class:`AggregatorState`."""

    def __init__(
        self,
        gateway: KeyDerivationGateway,
        *,
        state: Optional[AggregatorState] = None,
        abort_on_undecodable_update: bool = True,
    ) -> None:
        self.gateway = gateway
        self.state = state or AggregatorState()
        self._plain = PlainAggregationEngine(
            self.state,
            gateway,
            abort_on_undecodable_update=abort_on_undecodable_update,
        )
        self._smpc = SMPCAggregationEngine(self.state)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, **overrides: Any) -> "FederatedAggregator":
        settings = settings or Settings.load(**overrides)
        aggregator = cls(
            build_gateway(settings),
            abort_on_undecodable_update=settings.abort_on_undecodable_update,
        )
        aggregator.set_mode(settings.default_mode)
        return aggregator

    # ------------------------------------------------------------------
    # Registry and cycles
    # ------------------------------------------------------------------

    def register(self, identity: ClientIdentity) -> ClientId:
        with self.state.transaction() as st:
            return st.registry.register(identity)

    def get_client_id(self, identity: ClientIdentity) -> ClientId:
        with self.state.transaction() as st:
            return st.registry.lookup_id(identity)

    def advance_cycle(self) -> int:
        with self.state.transaction() as st:
            return st.cycles.advance()

    def get_cycle(self) -> int:
        with self.state.transaction() as st:
            return st.current_cycle

    def get_participants(self, cycle: int) -> List[ClientId]:
        with self.state.transaction() as st:
            return st.cycles.participants_of(cycle)

    # ------------------------------------------------------------------
    # Mode
    # ------------------------------------------------------------------

    def get_mode(self) -> str:
        with self.state.transaction() as st:
            return st.mode.value

    def set_mode(self, mode: str) -> str:
        parsed = AggregationMode.parse(mode)
        with self.state.transaction() as st:
            if st.mode is not parsed:
                logger.info("Aggregation mode set to %s", parsed.value)
            st.mode = parsed
        return parsed.value

    # ------------------------------------------------------------------
    # Plain pipeline
    # ------------------------------------------------------------------

    def upload_update(self, identity: ClientIdentity, update: bytes) -> None:
        """Store *identity*'s encrypted update for the current cycle (last write wins)."""
        with self.state.transaction() as st:
            client_id = st.registry.lookup_id(identity)
            st.model_updates.setdefault(st.current_cycle, {})[client_id] = bytes(update)

    async def run_aggregation(self) -> AggregationResult:
        return await self._plain.run()

    def get_global_model(self) -> bytes:
        with self.state.transaction() as st:
            return st.model.get()

    # ------------------------------------------------------------------
    # SMPC pipeline
    # ------------------------------------------------------------------

    def upload_masked_share_s(self, identity: ClientIdentity, share: Sequence[int]) -> None:
        """Store ``s_i = g_i_scaled - sum_j r_ij`` for the current cycle."""
        vector = validate_fixed_point(share)
        with self.state.transaction() as st:
            client_id = st.registry.lookup_id(identity)
            st.smpc_s_shares.setdefault(st.current_cycle, {})[client_id] = vector

    def upload_mask_sum_t(self, identity: ClientIdentity, mask_sum: Sequence[int]) -> None:
        """Store ``t_j = sum_i r_ij`` for the current cycle."""
        vector = validate_fixed_point(mask_sum)
        with self.state.transaction() as st:
            client_id = st.registry.lookup_id(identity)
            st.smpc_t_sums.setdefault(st.current_cycle, {})[client_id] = vector

    def run_smpc_aggregation(self) -> AggregationResult:
        return self._smpc.run()

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    async def derive_key_for_client(self, identity: ClientIdentity, derivation_path: bytes) -> str:
        """Hex-encoded key material for ``[derivation_path, identity]``."""
        return await self.gateway.get_symmetric_key_for_client(derivation_path, identity)

    async def aclose(self) -> None:
        await self.gateway.aclose()
