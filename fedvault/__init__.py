"""
fedvault: privacy-preserving aggregation for federated learning.

Clients upload model updates either encrypted under a per-client key that
only the key-derivation service can reproduce, or pairwise-masked for SMPC
mask cancellation.  The aggregator averages them into a single global model
without ever seeing an individual update in the clear.
"""

from __future__ import annotations

__version__ = "1.0.0"

from .codec import (
    SMPC_SCALE,
    decode_vector,
    decrypt_update,
    encode_vector,
    encrypt_update,
    from_fixed_point,
    to_fixed_point,
)
from .config import Settings, load_config, save_config
from .errors import (
    AggregationError,
    DecryptionFailed,
    DeserializationFailed,
    DuplicateRegistration,
    InvalidKeyMaterial,
    InvalidVector,
    KeyServiceUnavailable,
    MalformedCiphertext,
    NotRegistered,
    RecoverableError,
    UnknownClientId,
    VectorLengthMismatch,
)
from .keys import (
    HttpKeyDerivationService,
    KeyDerivationGateway,
    KeyDerivationService,
    KeyId,
    LocalKeyDerivationService,
)
from .results import AggregationResult
from .service import FederatedAggregator
from .state import AggregationMode, AggregatorState

__all__ = [
    "__version__",
    "SMPC_SCALE",
    "decode_vector",
    "decrypt_update",
    "encode_vector",
    "encrypt_update",
    "from_fixed_point",
    "to_fixed_point",
    "Settings",
    "load_config",
    "save_config",
    "AggregationError",
    "DecryptionFailed",
    "DeserializationFailed",
    "DuplicateRegistration",
    "InvalidKeyMaterial",
    "InvalidVector",
    "KeyServiceUnavailable",
    "MalformedCiphertext",
    "NotRegistered",
    "RecoverableError",
    "UnknownClientId",
    "VectorLengthMismatch",
    "HttpKeyDerivationService",
    "KeyDerivationGateway",
    "KeyDerivationService",
    "KeyId",
    "LocalKeyDerivationService",
    "AggregationResult",
    "FederatedAggregator",
    "AggregationMode",
    "AggregatorState",
]
