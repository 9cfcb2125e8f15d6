"""Network collaborator: gateway client, codec, keys, inserter and fetcher."""

from .client import HttpNetworkClient, NetworkClient
from .codec import IdentityDocument, decode_identity, encode_identity
from .fetcher import IdentityFetcher
from .inserter import PublicationScheduler
from .keys import KeyPair, derive_request_uri, generate_key_pair

__all__ = [
    "HttpNetworkClient",
    "IdentityDocument",
    "IdentityFetcher",
    "KeyPair",
    "NetworkClient",
    "PublicationScheduler",
    "decode_identity",
    "derive_request_uri",
    "encode_identity",
    "generate_key_pair",
]
