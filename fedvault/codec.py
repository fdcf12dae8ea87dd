"""Wire encodings shared by clients and the aggregator.

Three encodings live here:

**Float vectors** -- model updates and the global model are UTF-8 JSON
arrays of IEEE-754 binary32 values.  Each value is written in the shortest
decimal form that reads back to the same binary32, so ``[0.8, 0.2]`` stays
``[0.8,0.2]`` on the wire instead of ``[0.800000011920929, ...]``.

**Encrypted updates** -- ``nonce (12 bytes) || AES-256-GCM ciphertext + tag``.
Any AES-GCM implementation (JCA, CryptoKit, ``cryptography``) can
produce it.

**Fixed-point vectors** -- SMPC inputs are signed 64-bit integers holding
``round(value * 1e6)``.
"""

from __future__ import annotations

import json
import math
import os
import struct
from typing import Any, Iterable, List, Sequence

from .errors import (
    DecryptionFailed,
    DeserializationFailed,
    InvalidKeyMaterial,
    InvalidVector,
    MalformedCiphertext,
)

# Fixed-point scaling factor used for SMPC integer encoding of gradients.
SMPC_SCALE = 1_000_000

I64_MIN = -(1 << 63)
I64_MAX = (1 << 63) - 1

AES_GCM_NONCE_SIZE = 12
AES_256_KEY_SIZE = 32

_F32 = struct.Struct("<f")


def _require_cryptography():
    """Import and return the ``cryptography`` package or raise a clear error."""
    try:
        import cryptography  # noqa: F401

        return cryptography
    except ImportError as exc:
        raise ImportError(
            "fedvault requires the 'cryptography' package. "
            "Install it with: pip install fedvault"
        ) from exc


# ---------------------------------------------------------------------------
# binary32 helpers
# ---------------------------------------------------------------------------


def to_f32(value: float) -> float:
    """Round *value* to the nearest binary32, saturating to +/-inf."""
    try:
        return _F32.unpack(_F32.pack(value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def _format_f32(value: float) -> str:
    if not math.isfinite(value):
        return "null"
    text = repr(value)
    for precision in range(1, 10):
        candidate = "%.*g" % (precision, value)
        if to_f32(float(candidate)) == value:
            text = candidate
            break
    if not any(c in text for c in ".e"):
        text += ".0"
    return text


def encode_vector(values: Iterable[float]) -> bytes:
    """Serialise *values* as a JSON array of binary32 numbers."""
    parts = [_format_f32(to_f32(float(v))) for v in values]
    return ("[" + ",".join(parts) + "]").encode("utf-8")


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def decode_vector(data: bytes) -> List[float]:
    """Parse a JSON array of numbers into binary32 floats.

    Raises :class:`DeserializationFailed` for anything that is not a flat
    array of numbers, or that holds a number outside the double range.
    Doubles beyond binary32 range saturate to infinity, the same way a
    ``f64 -> f32`` cast does.
    """
    try:
        parsed = json.loads(data, parse_constant=_reject_constant)
    except ValueError as exc:
        raise DeserializationFailed(f"Failed to deserialize model update: {exc}") from exc

    if not isinstance(parsed, list):
        raise DeserializationFailed("Failed to deserialize model update: expected a JSON array")

    values: List[float] = []
    for item in parsed:
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            raise DeserializationFailed(
                f"Failed to deserialize model update: unexpected element {item!r}"
            )
        try:
            value = float(item)
        except OverflowError:
            value = math.inf
        if not math.isfinite(value):
            raise DeserializationFailed("Failed to deserialize model update: number out of range")
        values.append(to_f32(value))
    return values


# ---------------------------------------------------------------------------
# AES-256-GCM envelope
# ---------------------------------------------------------------------------


def aead_for_key(key: bytes):
    """Build an ``AESGCM`` cipher, rejecting keys that are not 32 bytes."""
    _require_cryptography()
    from cryptography.hazmat.primitives.ciphers.aead import AESGCM

    if len(key) != AES_256_KEY_SIZE:
        raise InvalidKeyMaterial(
            f"Failed to create AES key: expected {AES_256_KEY_SIZE} bytes, got {len(key)}"
        )
    return AESGCM(key)


def seal(plaintext: bytes, key: bytes) -> bytes:
    """Encrypt *plaintext* and return ``nonce || ciphertext + tag``."""
    aesgcm = aead_for_key(key)
    nonce = os.urandom(AES_GCM_NONCE_SIZE)
    return nonce + aesgcm.encrypt(nonce, plaintext, None)


def open_envelope(envelope: bytes, aesgcm) -> bytes:
    """Split and decrypt an envelope with a prepared ``AESGCM`` cipher.

    Raises :class:`MalformedCiphertext` when the envelope cannot even hold a
    nonce and :class:`DecryptionFailed` when authentication fails.
    """
    from cryptography.exceptions import InvalidTag

    if len(envelope) < AES_GCM_NONCE_SIZE:
        raise MalformedCiphertext(
            f"Encrypted payload is {len(envelope)} bytes, shorter than the nonce"
        )
    nonce = envelope[:AES_GCM_NONCE_SIZE]
    ciphertext = envelope[AES_GCM_NONCE_SIZE:]
    try:
        return aesgcm.decrypt(nonce, ciphertext, None)
    except InvalidTag as exc:
        raise DecryptionFailed("Authentication tag mismatch") from exc


def encrypt_update(values: Sequence[float], key: bytes) -> bytes:
    """Client-side helper: encode and encrypt a model update."""
    return seal(encode_vector(values), key)


def decrypt_update(envelope: bytes, key: bytes) -> List[float]:
    """Inverse of :func:`encrypt_update`."""
    return decode_vector(open_envelope(envelope, aead_for_key(key)))


# ---------------------------------------------------------------------------
# Fixed-point (SMPC)
# ---------------------------------------------------------------------------


def to_fixed_point(values: Iterable[float], scale: int = SMPC_SCALE) -> List[int]:
    """Encode floats as ``round(value * scale)``."""
    return [int(round(v * scale)) for v in values]


def from_fixed_point(values: Iterable[int], scale: int = SMPC_SCALE) -> List[float]:
    return [v / scale for v in values]


def validate_fixed_point(values: Sequence[Any]) -> List[int]:
    """Return *values* as a list of ints, each within the signed 64-bit range."""
    checked: List[int] = []
    for i, v in enumerate(values):
        if isinstance(v, bool) or not isinstance(v, int):
            raise InvalidVector(f"element {i} is not an integer: {v!r}")
        if v < I64_MIN or v > I64_MAX:
            raise InvalidVector(f"element {i} is outside the signed 64-bit range")
        checked.append(v)
    return checked
