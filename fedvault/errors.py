"""Error taxonomy for the aggregation service.

Every error carries a ``fatal`` flag.  Fatal errors abort the operation that
raised them and leave shared state untouched.  Recoverable errors are raised
and caught inside the aggregation engines, which skip the offending item and
keep going.
"""

from __future__ import annotations


class AggregationError(RuntimeError):
    """Base class for all fedvault errors."""

    fatal = True


# ---------------------------------------------------------------------------
# Fatal
# ---------------------------------------------------------------------------


class DuplicateRegistration(AggregationError):
    pass


class NotRegistered(AggregationError):
    pass


class UnknownClientId(AggregationError):
    pass


class KeyServiceUnavailable(AggregationError):
    pass


class InvalidKeyMaterial(AggregationError):
    """Derived key material cannot be used as an AES-256 key."""


class DeserializationFailed(AggregationError):
    """Decrypted plaintext is not a JSON array of 32-bit floats."""


class InvalidVector(AggregationError):
    """Fixed-point vector contains a non-integer or out-of-range element."""


# ---------------------------------------------------------------------------
# Recoverable (skip the item, continue the pass)
# ---------------------------------------------------------------------------


class RecoverableError(AggregationError):
    fatal = False


class MalformedCiphertext(RecoverableError):
    pass


class DecryptionFailed(RecoverableError):
    pass


class VectorLengthMismatch(RecoverableError):
    pass
