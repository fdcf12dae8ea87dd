"""Tests for the key derivation gateway and its service backends."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from fedvault.errors import KeyServiceUnavailable
from fedvault.keys import (
    DEFAULT_DERIVATION_LABEL,
    HttpKeyDerivationService,
    KeyDerivationGateway,
    KeyDerivationService,
    KeyId,
    LocalKeyDerivationService,
)

MASTER = b"m" * 32


class _FailingService(KeyDerivationService):
    def __init__(self, exc: Exception) -> None:
        self.exc = exc
        self.calls = 0

    async def derive_key(self, key_id, derivation_path):
        self.calls += 1
        raise self.exc


class _RecordingService(KeyDerivationService):
    def __init__(self) -> None:
        self.requests: list[tuple[KeyId, list[bytes]]] = []

    async def derive_key(self, key_id, derivation_path):
        self.requests.append((key_id, list(derivation_path)))
        return b"k" * 32


# ---------------------------------------------------------------------------
# LocalKeyDerivationService
# ---------------------------------------------------------------------------


class TestLocalKeyDerivationService:
    def test_deterministic(self):
        svc = LocalKeyDerivationService(MASTER)
        k1 = asyncio.run(svc.derive_key(KeyId(), [b"label", b"alice"]))
        k2 = asyncio.run(svc.derive_key(KeyId(), [b"label", b"alice"]))
        assert k1 == k2
        assert len(k1) == 32

    def test_same_master_same_key_across_instances(self):
        a = LocalKeyDerivationService(MASTER)
        b = LocalKeyDerivationService(MASTER)
        path = [b"label", b"alice"]
        assert asyncio.run(a.derive_key(KeyId(), path)) == asyncio.run(b.derive_key(KeyId(), path))

    def test_identity_changes_key(self):
        svc = LocalKeyDerivationService(MASTER)
        k1 = asyncio.run(svc.derive_key(KeyId(), [b"label", b"alice"]))
        k2 = asyncio.run(svc.derive_key(KeyId(), [b"label", b"bob"]))
        assert k1 != k2

    def test_segment_boundaries_matter(self):
        svc = LocalKeyDerivationService(MASTER)
        k1 = asyncio.run(svc.derive_key(KeyId(), [b"ab", b"c"]))
        k2 = asyncio.run(svc.derive_key(KeyId(), [b"a", b"bc"]))
        assert k1 != k2

    def test_key_id_changes_key(self):
        svc = LocalKeyDerivationService(MASTER)
        k1 = asyncio.run(svc.derive_key(KeyId(name="test_key_1"), [b"p"]))
        k2 = asyncio.run(svc.derive_key(KeyId(name="key_1"), [b"p"]))
        assert k1 != k2

    def test_random_master_when_unset(self):
        a = LocalKeyDerivationService()
        b = LocalKeyDerivationService()
        assert asyncio.run(a.derive_key(KeyId(), [b"p"])) != asyncio.run(b.derive_key(KeyId(), [b"p"]))


# ---------------------------------------------------------------------------
# KeyDerivationGateway
# ---------------------------------------------------------------------------


class TestKeyDerivationGateway:
    def test_update_key_path_is_label_then_identity(self):
        svc = _RecordingService()
        gateway = KeyDerivationGateway(svc)
        asyncio.run(gateway.derive_update_key("alice"))
        key_id, path = svc.requests[0]
        assert key_id == KeyId("bls12_381_g2", "test_key_1")
        assert path == [DEFAULT_DERIVATION_LABEL, b"alice"]

    def test_client_path_is_caller_path_then_identity(self):
        svc = _RecordingService()
        gateway = KeyDerivationGateway(svc)
        key_hex = asyncio.run(gateway.get_symmetric_key_for_client(b"my-path", b"\x01\x02"))
        assert key_hex == (b"k" * 32).hex()
        assert svc.requests[0][1] == [b"my-path", b"\x01\x02"]

    def test_client_and_aggregator_keys_agree(self):
        gateway = KeyDerivationGateway(LocalKeyDerivationService(MASTER))
        aggregator_key = asyncio.run(gateway.derive_update_key("alice"))
        client_key = asyncio.run(
            gateway.get_symmetric_key_for_client(DEFAULT_DERIVATION_LABEL, "alice")
        )
        assert bytes.fromhex(client_key) == aggregator_key

    def test_different_label_gives_different_key(self):
        gateway = KeyDerivationGateway(LocalKeyDerivationService(MASTER))
        aggregator_key = asyncio.run(gateway.derive_update_key("alice"))
        other = asyncio.run(gateway.get_symmetric_key_for_client(b"other", "alice"))
        assert bytes.fromhex(other) != aggregator_key

    def test_unexpected_backend_error_becomes_unavailable(self):
        svc = _FailingService(RuntimeError("boom"))
        gateway = KeyDerivationGateway(svc)
        with pytest.raises(KeyServiceUnavailable, match="boom"):
            asyncio.run(gateway.derive_update_key("alice"))
        # No retry.
        assert svc.calls == 1

    def test_unavailable_passes_through(self):
        gateway = KeyDerivationGateway(_FailingService(KeyServiceUnavailable("down")))
        with pytest.raises(KeyServiceUnavailable, match="down"):
            asyncio.run(gateway.derive_update_key("alice"))


# ---------------------------------------------------------------------------
# HttpKeyDerivationService
# ---------------------------------------------------------------------------


def _http_service(handler, **kwargs) -> HttpKeyDerivationService:
    return HttpKeyDerivationService(
        "https://kds.example.com/",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class TestHttpKeyDerivationService:
    def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"key_material": "ab" * 32})

        svc = _http_service(handler, auth_token_provider=lambda: "tok")
        key = asyncio.run(svc.derive_key(KeyId(), [b"label", b"alice"]))

        assert key == b"\xab" * 32
        assert seen["url"] == "https://kds.example.com/derive_key"
        assert seen["body"] == {
            "key_id": {"curve": "bls12_381_g2", "name": "test_key_1"},
            "derivation_path": [b"label".hex(), b"alice".hex()],
        }
        assert seen["auth"] == "Bearer tok"

    def test_no_auth_header_without_provider(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"key_material": "00" * 32})

        asyncio.run(_http_service(handler).derive_key(KeyId(), [b"p"]))
        assert seen["auth"] is None

    def test_server_error(self):
        svc = _http_service(lambda request: httpx.Response(503, text="busy"))
        with pytest.raises(KeyServiceUnavailable, match="503"):
            asyncio.run(svc.derive_key(KeyId(), [b"p"]))

    def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(KeyServiceUnavailable, match="refused"):
            asyncio.run(_http_service(handler).derive_key(KeyId(), [b"p"]))

    def test_malformed_body(self):
        for body in ({}, {"key_material": "zz"}, {"key_material": 12}):
            svc = _http_service(lambda request, body=body: httpx.Response(200, json=body))
            with pytest.raises(KeyServiceUnavailable, match="malformed"):
                asyncio.run(svc.derive_key(KeyId(), [b"p"]))

    def test_non_json_body(self):
        svc = _http_service(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(KeyServiceUnavailable, match="malformed"):
            asyncio.run(svc.derive_key(KeyId(), [b"p"]))

    def test_aclose(self):
        svc = _http_service(lambda request: httpx.Response(200, json={"key_material": "00"}))

        async def _run():
            await svc.derive_key(KeyId(), [b"p"])
            assert svc._client is not None
            await svc.aclose()
            assert svc._client is None

        asyncio.run(_run())
