"""Key derivation gateway.

Per-client encryption keys are never exchanged.  Both sides ask an external
threshold key-derivation service for the key at the same path:

- the aggregator derives ``[label, identity]`` for each client whose update
  it needs to decrypt;
- a client calls :meth:`KeyDerivationGateway.get_symmetric_key_for_client`
  with ``label`` as its path, which the gateway extends with the caller's
  own identity.

Because the service is deterministic in ``(key_id, path)`` both calls yield
the same 32 bytes.

Two service backends are provided: :class:`HttpKeyDerivationService` talks to
a remote service over HTTP, and :class:`LocalKeyDerivationService` derives
keys in-process with HKDF from a master secret (development and tests).
"""

from __future__ import annotations

import logging
import secrets
import struct
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import httpx

from .codec import AES_256_KEY_SIZE, _require_cryptography
from .errors import AggregationError, KeyServiceUnavailable
from .registry import ClientIdentity, identity_bytes

logger = logging.getLogger(__name__)

DEFAULT_KEY_CURVE = "bls12_381_g2"
DEFAULT_KEY_NAME = "test_key_1"
DEFAULT_DERIVATION_LABEL = b"model_update_encryption"


@dataclass(frozen=True)
class KeyId:
    """Public key identifier of the master key held by the service."""

    curve: str = DEFAULT_KEY_CURVE
    name: str = DEFAULT_KEY_NAME

    def to_dict(self) -> dict[str, str]:
        return {"curve": self.curve, "name": self.name}


# ---------------------------------------------------------------------------
# Service backends
# ---------------------------------------------------------------------------


class KeyDerivationService:
    """Interface of the external key-derivation service."""

    async def derive_key(self, key_id: KeyId, derivation_path: Sequence[bytes]) -> bytes:
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release any connections held by the backend."""


class LocalKeyDerivationService(KeyDerivationService):
    """In-process stand-in: HKDF-SHA256 over a master secret.

    The HKDF ``info`` is the key id followed by each path segment, all
    length-prefixed, so distinct paths can never collide by concatenation.
    """

    def __init__(self, master_secret: Optional[bytes] = None) -> None:
        _require_cryptography()
        self._master_secret = master_secret or secrets.token_bytes(32)

    @staticmethod
    def _info(key_id: KeyId, derivation_path: Sequence[bytes]) -> bytes:
        parts = [key_id.curve.encode("utf-8"), key_id.name.encode("utf-8")]
        parts.extend(derivation_path)
        buf = struct.pack(">I", len(parts))
        for part in parts:
            buf += struct.pack(">I", len(part)) + part
        return buf

    async def derive_key(self, key_id: KeyId, derivation_path: Sequence[bytes]) -> bytes:
        from cryptography.hazmat.primitives.hashes import SHA256
        from cryptography.hazmat.primitives.kdf.hkdf import HKDF

        return HKDF(
            algorithm=SHA256(),
            length=AES_256_KEY_SIZE,
            salt=None,
            info=self._info(key_id, derivation_path),
        ).derive(self._master_secret)


class HttpKeyDerivationService(KeyDerivationService):
    """Client for a remote key-derivation service.

    Request: ``POST {base_url}/derive_key`` with
    ``{"key_id": {"curve", "name"}, "derivation_path": [hex, ...]}``.
    Response: ``{"key_material": hex}``.

    Failures are not retried; the caller decides whether to re-run.
    """

    def __init__(
        self,
        base_url: str,
        *,
        auth_token_provider: Optional[Callable[[], str]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.auth_token_provider = auth_token_provider
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Return a shared httpx.AsyncClient, creating one if needed."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        if self.auth_token_provider is None:
            return {}
        token = self.auth_token_provider()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def derive_key(self, key_id: KeyId, derivation_path: Sequence[bytes]) -> bytes:
        url = f"{self.base_url}/derive_key"
        payload: dict[str, Any] = {
            "key_id": key_id.to_dict(),
            "derivation_path": [segment.hex() for segment in derivation_path],
        }
        try:
            res = await self._get_client().post(url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            raise KeyServiceUnavailable(f"call to derive_key failed: {exc}") from exc

        if res.status_code >= 400:
            raise KeyServiceUnavailable(
                f"call to derive_key failed: HTTP {res.status_code} {res.text}"
            )
        try:
            return bytes.fromhex(res.json()["key_material"])
        except (ValueError, KeyError, TypeError) as exc:
            raise KeyServiceUnavailable(f"malformed derive_key response: {exc}") from exc


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class KeyDerivationGateway:
    """Binds a service backend to the fixed key id and derivation label."""

    def __init__(
        self,
        service: KeyDerivationService,
        *,
        key_id: Optional[KeyId] = None,
        label: bytes = DEFAULT_DERIVATION_LABEL,
    ) -> None:
        self.service = service
        self.key_id = key_id or KeyId()
        self.label = label

    async def derive_for(
        self,
        path_segments: Sequence[bytes],
        identity: ClientIdentity,
    ) -> bytes:
        """Derive key material for ``path_segments + [identity]``."""
        path = [bytes(segment) for segment in path_segments]
        path.append(identity_bytes(identity))
        logger.debug("Deriving key (%d path segment(s))", len(path))
        try:
            return await self.service.derive_key(self.key_id, path)
        except AggregationError:
            raise
        except Exception as exc:
            raise KeyServiceUnavailable(f"call to derive_key failed: {exc}") from exc

    async def derive_update_key(self, identity: ClientIdentity) -> bytes:
        """Key the aggregator uses to decrypt *identity*'s uploads."""
        return await self.derive_for([self.label], identity)

    async def get_symmetric_key_for_client(
        self,
        derivation_path: bytes,
        identity: ClientIdentity,
    ) -> str:
        """Caller-facing passthrough; returns the raw key material hex-encoded."""
        material = await self.derive_for([derivation_path], identity)
        return material.hex()

    async def aclose(self) -> None:
        await self.service.aclose()
