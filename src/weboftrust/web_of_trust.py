# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Web of Trust node.

``WebOfTrust`` wires the graph store, the score engine, the network client,
the publication scheduler and the fetcher together and offers the
operations the protocol dispatcher exposes. Operations that change the
published state of an identity (trust, contexts, properties) only act on
own identities.

Example:
    >>> wot = WebOfTrust.from_config()
    >>> wot.start()
    >>> alice = wot.create_identity("alice", publish_trust_list=True, context="Forum")
    >>> bob = wot.add_identity("USK@...,...,AQACAAE/WoT/0")
    >>> wot.set_trust(alice.id, bob.id, 75, "known from the forum")
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .core.clock import Clock, SystemClock
from .core.config import get_config
from .core.exceptions import NotTrustedError, UnreachableError, ValidationError
from .core.logging import configure_logging
from .graph.models import Identity, OwnIdentity, Score, Trust
from .graph.persistence import GraphBackend, MemoryBackend, PostgresBackend
from .graph.store import GraphStore
from .introduction import INTRODUCTION_CONTEXT, introduction_properties
from .network.client import HttpNetworkClient, NetworkClient
from .network.fetcher import IdentityFetcher
from .network.inserter import PublicationScheduler
from .network.keys import derive_request_uri, generate_key_pair
from .scoring.engine import ScoreEngine

logger = logging.getLogger(__name__)

ALL_CONTEXTS = "all"


class WebOfTrust:
    """A Web of Trust node."""

    def __init__(
        self,
        store: GraphStore | None = None,
        network: NetworkClient | None = None,
        scheduler: PublicationScheduler | None = None,
        clock: Clock | None = None,
    ):
        self.clock = clock or (store.clock if store is not None else SystemClock())
        self.store = store or GraphStore(clock=self.clock)
        self.network = network
        self.scheduler = scheduler
        if self.scheduler is None and network is not None:
            self.scheduler = PublicationScheduler(self.store, network, clock=self.clock)
        self.fetcher = IdentityFetcher(self.store, network) if network is not None else None

    @classmethod
    def from_config(cls, clock: Clock | None = None) -> WebOfTrust:
        """Build a node from ``get_config()`` (logging, backend, gateway, scoring)."""
        config = get_config()
        configure_logging()
        backend: GraphBackend
        if config.storage_backend == "postgres":
            backend = PostgresBackend()
        else:
            backend = MemoryBackend()
        clock = clock or SystemClock()
        store = GraphStore(
            backend=backend,
            engine=ScoreEngine(min_positive_trust=config.min_positive_trust),
            clock=clock,
        )
        return cls(store=store, network=HttpNetworkClient(), clock=clock)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """Load the persisted graph and start republishing own identities.

        Score sets are recomputed after loading, so rows stored under other
        engine settings (e.g. ``min_positive_trust``) are brought up to date.
        """
        self.store.load()
        self.store.recompute_all()
        if self.scheduler is not None:
            self.scheduler.start()
        logger.info(f"Web of Trust started with {len(self.store.own_identities())} own identities")

    def stop(self) -> None:
        if self.scheduler is not None:
            self.scheduler.stop()
        if isinstance(self.store.backend, PostgresBackend):
            from .core.db import close_pool

            close_pool()
        logger.info("Web of Trust stopped")

    # =========================================================================
    # IDENTITIES
    # =========================================================================

    def create_identity(
        self,
        nickname: str,
        publish_trust_list: bool = True,
        context: str | None = None,
        insert_uri: str | None = None,
        request_uri: str | None = None,
        publish_introduction_puzzles: bool = False,
    ) -> OwnIdentity:
        """Create an own identity, generating a key pair unless one is given.

        Introduction puzzles are only announced for identities that publish
        their trust list, since solving a puzzle earns trust from them.
        """
        if insert_uri is None and request_uri is None:
            keys = generate_key_pair()
            insert_uri, request_uri = keys.insert_uri, keys.request_uri
        elif insert_uri is None:
            raise ValidationError("RequestURI given without InsertURI", field="InsertURI")
        elif request_uri is None:
            request_uri = derive_request_uri(insert_uri)

        contexts = [context] if context else []
        properties = {}
        if publish_trust_list and publish_introduction_puzzles:
            contexts.append(INTRODUCTION_CONTEXT)
            properties.update(introduction_properties())

        return self.store.create_own_identity(
            insert_uri,
            request_uri,
            nickname,
            publish_trust_list=publish_trust_list,
            contexts=contexts,
            properties=properties,
        )

    def add_identity(self, request_uri: str, fetch: bool = False) -> Identity:
        """Add a remote identity by request URI, optionally importing its state now.

        Raises:
            DuplicateIdentityError: The identity is already known
        """
        identity = self.store.create_identity(request_uri)
        if fetch and self.fetcher is not None:
            identity = self.fetcher.fetch(identity.id)
        return identity

    def fetch_identity(self, identifier: str) -> Identity:
        if self.fetcher is None:
            raise ValidationError("No network configured, cannot fetch identities")
        return self.fetcher.fetch(identifier)

    def get_identity(self, identifier: str) -> Identity:
        return self.store.get_identity(identifier)

    def own_identities(self) -> list[OwnIdentity]:
        return sorted(self.store.own_identities(), key=lambda o: (o.nickname or "", o.id))

    def identity_report(self, tree_owner: str, identifier: str) -> tuple[Identity, Trust | None, Score | None]:
        """An identity as seen from an own identity: its trust from and score in that tree."""
        owner = self.store.get_own_identity(tree_owner)
        identity = self.store.get_identity(identifier)
        try:
            trust = self.store.get_trust(owner.id, identity.id)
        except NotTrustedError:
            trust = None
        try:
            score = self.store.get_score(owner.id, identity.id)
        except UnreachableError:
            score = None
        return identity, trust, score

    def identities_by_score(
        self,
        tree_owner: str | None,
        sign: int,
        context: str = ALL_CONTEXTS,
    ) -> list[tuple[Identity, Score]]:
        """Identities by score sign, optionally limited to one context.

        Own identities are listed in the trees of other own identities but
        never in their own.
        """
        rows = self.store.identities_by_score_sign(tree_owner, sign)
        rows = [(i, s) for i, s in rows if i.id != s.anchor_id]
        return [(i, s) for i, s in rows if _in_context(i, context)]

    def trusters(self, identifier: str, context: str = ALL_CONTEXTS) -> list[tuple[Identity, Trust]]:
        trusts = self.store.received_trusts(identifier)
        return self._with_identities(((t.truster_id, t) for t in trusts), context)

    def trustees(self, identifier: str, context: str = ALL_CONTEXTS) -> list[tuple[Identity, Trust]]:
        trusts = self.store.given_trusts(identifier)
        return self._with_identities(((t.trustee_id, t) for t in trusts), context)

    def _with_identities(self, pairs: Iterable[tuple[str, Trust]], context: str) -> list[tuple[Identity, Trust]]:
        result = []
        for identity_id, trust in pairs:
            identity = self.store.get_identity(identity_id)
            if _in_context(identity, context):
                result.append((identity, trust))
        return sorted(result, key=lambda pair: (-pair[1].value, pair[0].id))

    # =========================================================================
    # OWN IDENTITY STATE
    # =========================================================================

    def set_trust(self, truster: str, trustee: str, value: int | str, comment: str = "") -> Trust:
        own = self.store.get_own_identity(truster)
        return self.store.set_trust(own.id, trustee, value, comment)

    def remove_trust(self, truster: str, trustee: str) -> None:
        own = self.store.get_own_identity(truster)
        self.store.remove_trust(own.id, trustee)

    def add_context(self, identifier: str, context: str) -> Identity:
        own = self.store.get_own_identity(identifier)
        return self.store.add_context(own.id, context)

    def remove_context(self, identifier: str, context: str) -> Identity:
        own = self.store.get_own_identity(identifier)
        return self.store.remove_context(own.id, context)

    def set_property(self, identifier: str, name: str, value: str) -> Identity:
        own = self.store.get_own_identity(identifier)
        return self.store.set_property(own.id, name, value)

    def get_property(self, identifier: str, name: str) -> str:
        return self.store.get_property(identifier, name)

    def remove_property(self, identifier: str, name: str) -> Identity:
        own = self.store.get_own_identity(identifier)
        return self.store.remove_property(own.id, name)


def _in_context(identity: Identity, context: str) -> bool:
    return not context or context == ALL_CONTEXTS or context in identity.contexts

