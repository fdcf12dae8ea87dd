"""Client registry: dense sequential ids for opaque caller identities."""

from __future__ import annotations

import logging
from typing import Dict, List, Union

from .errors import DuplicateRegistration, NotRegistered, UnknownClientId

logger = logging.getLogger(__name__)

ClientIdentity = Union[str, bytes]
ClientId = int


def identity_bytes(identity: ClientIdentity) -> bytes:
    """Return the byte form of *identity* used in key derivation paths."""
    if isinstance(identity, bytes):
        return identity
    return identity.encode("utf-8")


class ClientRegistry:
    """Append-only mapping ``identity -> ClientId``.

    Ids are assigned in registration order starting at 0 and never reused.
    There is no unregister operation, which is what keeps a ClientId ->
    identity lookup stable for the lifetime of the process.
    """

    def __init__(self) -> None:
        self._clients: List[ClientIdentity] = []
        self._index: Dict[bytes, ClientId] = {}

    def __len__(self) -> int:
        return len(self._clients)

    def __contains__(self, identity: object) -> bool:
        if not isinstance(identity, (str, bytes)):
            return False
        return identity_bytes(identity) in self._index

    def register(self, identity: ClientIdentity) -> ClientId:
        key = identity_bytes(identity)
        if key in self._index:
            raise DuplicateRegistration("Client already registered.")
        client_id = len(self._clients)
        self._clients.append(identity)
        self._index[key] = client_id
        logger.info("Registered client %d", client_id)
        return client_id

    def lookup_id(self, identity: ClientIdentity) -> ClientId:
        try:
            return self._index[identity_bytes(identity)]
        except KeyError:
            raise NotRegistered("Client not registered") from None

    def identity_of(self, client_id: ClientId) -> ClientIdentity:
        if client_id < 0 or client_id >= len(self._clients):
            raise UnknownClientId(f"Client principal not found for id {client_id}")
        return self._clients[client_id]

    def ids(self) -> List[ClientId]:
        """All currently registered ids, ascending."""
        return list(range(len(self._clients)))

    def snapshot(self) -> List[ClientIdentity]:
        """Copy of the identity list, indexed by ClientId."""
        return list(self._clients)
