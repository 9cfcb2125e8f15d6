# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Key pairs for own identities.

An identity is published under an updatable key: the insert URI carries the
private key and may only be known locally, the request URI carries the
fingerprint of the public key and is what other identities trust. Both
share the same symmetric crypto key, so a pair can be checked for
consistency without touching the network.

    USK@<routing>,<crypto>,<extra>/WoT/<edition>
"""

from __future__ import annotations

import base64
import hashlib
import os
from dataclasses import dataclass

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from ..core.exceptions import ValidationError
from ..graph.models import crypto_key_of, edition_of, identity_id_from_uri

URI_DOCNAME = "WoT"

_REQUEST_EXTRA = "AQACAAE"
_INSERT_EXTRA = "AQECAAE"


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _unb64(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


@dataclass(frozen=True)
class KeyPair:
    insert_uri: str
    request_uri: str

    @property
    def identity_id(self) -> str:
        return identity_id_from_uri(self.request_uri)


def _routing_key(private_key: Ed25519PrivateKey) -> str:
    public_bytes = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
    return _b64(hashlib.sha256(public_bytes).digest())


def generate_key_pair(private_key: Ed25519PrivateKey | None = None, edition: int = 0) -> KeyPair:
    """Create a fresh insert/request URI pair.

    Args:
        private_key: Optionally supply an existing key (tests / import)
        edition: Edition both URIs start at
    """
    if private_key is None:
        private_key = Ed25519PrivateKey.generate()
    private_bytes = private_key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())
    crypto_key = _b64(os.urandom(32))

    return KeyPair(
        insert_uri=f"USK@{_b64(private_bytes)},{crypto_key},{_INSERT_EXTRA}/{URI_DOCNAME}/{edition}",
        request_uri=f"USK@{_routing_key(private_key)},{crypto_key},{_REQUEST_EXTRA}/{URI_DOCNAME}/{edition}",
    )


def derive_request_uri(insert_uri: str) -> str:
    """Compute the request URI belonging to an insert URI generated here."""
    routing = insert_uri.strip().split("@", 1)[-1].split(",", 1)[0]
    try:
        private_key = Ed25519PrivateKey.from_private_bytes(_unb64(routing))
    except ValueError:
        raise ValidationError("InsertURI does not carry a private key", field="InsertURI") from None
    crypto_key = crypto_key_of(insert_uri, "InsertURI")
    return f"USK@{_routing_key(private_key)},{crypto_key},{_REQUEST_EXTRA}/{URI_DOCNAME}/{edition_of(insert_uri)}"

