# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Passive discovery: fetch published identity state into the graph."""

from __future__ import annotations

import logging

from ..graph.models import Identity
from ..graph.store import GraphStore
from .client import NetworkClient
from .codec import decode_identity

logger = logging.getLogger(__name__)


class IdentityFetcher:
    """Imports the latest published state of remote identities."""

    def __init__(self, store: GraphStore, network: NetworkClient):
        self.store = store
        self.network = network

    def fetch(self, identifier: str) -> Identity:
        """Fetch and import one identity.

        Raises:
            UnknownIdentityError: The identity is not in the graph
            TransportError: The network could not deliver the document
            ValidationError: The document is malformed
        """
        identity = self.store.get_identity(identifier)
        if identity.is_own:
            logger.debug(f"Not fetching own identity {identity.id}")
            return identity

        document = decode_identity(self.network.fetch(identity.request_uri))
        return self.store.import_identity_state(
            identity.id,
            edition=document.edition,
            nickname=document.nickname,
            contexts=document.contexts,
            properties=document.properties,
            publishes_trust_list=document.publishes_trust_list,
            trusts=document.trusts,
        )
