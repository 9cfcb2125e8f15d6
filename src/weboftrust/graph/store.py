# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Trust graph store.

Holds identities, own identities, trust edges and the per-anchor Score sets,
and enforces the graph invariants at its boundary:

- at most one identity per id and one trust edge per (truster, trustee)
  pair; ``create_*`` fails on duplicates, ``set_trust`` overwrites;
- every edge mutation recomputes the Score set of every own identity before
  it is committed;
- a mutation is all-or-nothing: it runs against a clone of the graph under
  the store lock, is committed through the backend as one change set, and
  only then replaces the live graph. Any error, including a
  ``PersistenceError`` from the backend, leaves the live graph untouched.

The same lock is the serialization point for the needs-insert bookkeeping
shared with the publication scheduler (``last_changed`` bumps by mutations,
``mark_inserted`` by the scheduler).
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any

from ..core.clock import Clock, SystemClock
from ..core.exceptions import (
    ConflictError,
    DuplicateIdentityError,
    DuplicateTrustError,
    NotFoundError,
    NotTrustedError,
    PersistenceError,
    UnknownIdentityError,
    UnreachableError,
    ValidationError,
)
from ..scoring.engine import ScoreEngine, select_by_sign
from .models import (
    MAX_TRUST_LIST_SIZE,
    Identity,
    OwnIdentity,
    Score,
    Trust,
    crypto_key_of,
    edition_of,
    identity_id_from_uri,
    validate_comment,
    validate_context,
    validate_nickname,
    validate_property,
    validate_trust_value,
    with_edition,
)
from .persistence import ChangeSet, GraphBackend, GraphState, MemoryBackend

logger = logging.getLogger(__name__)

# (request_uri, value, comment) as published in a trust list
PublishedTrust = tuple[str, Any, str]


@dataclass(frozen=True)
class IdentityExport:
    identity: OwnIdentity
    trusts: list[tuple[Trust, Identity]]
    exported_at: datetime


class GraphStore:
    """Thread-safe store for the trust graph and its Score sets."""

    def __init__(
        self,
        backend: GraphBackend | None = None,
        engine: ScoreEngine | None = None,
        clock: Clock | None = None,
    ):
        self.backend = backend or MemoryBackend()
        self.engine = engine or ScoreEngine()
        self.clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._state = GraphState()
        self._last_stamp: datetime | None = None

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def load(self) -> None:
        """Replace the live graph with what the backend has persisted."""
        with self._lock:
            self._state = self.backend.load()
            stamps = [i.last_changed for i in self._state.identities.values()]
            stamps += [o.last_insert for o in self._state.own_identities() if o.last_insert is not None]
            self._last_stamp = max(stamps, default=None)
        logger.info(
            f"Trust graph loaded: {len(self._state.identities)} identities, "
            f"{len(self._state.own_identities())} own"
        )

    @contextmanager
    def _transaction(self) -> Generator[GraphState, None, None]:
        """Mutate a clone of the graph; commit and swap it in on success."""
        with self._lock:
            state = self._state.clone()
            yield state
            changes = ChangeSet.between(self._state, state)
            if not changes.is_empty:
                try:
                    self.backend.commit(changes)
                except PersistenceError:
                    logger.error("Commit failed, trust graph change rolled back")
                    raise
            self._state = state

    def _recompute_anchors(self, state: GraphState, anchors: Iterable[OwnIdentity] | None = None) -> None:
        for anchor in state.own_identities() if anchors is None else anchors:
            state.scores[anchor.id] = self.engine.compute_trust_tree(anchor.id, state.given, state.received)

    def _stamp(self) -> datetime:
        """Strictly increasing timestamp, even if the clock stands still."""
        with self._lock:
            now = self.clock.now()
            if self._last_stamp is not None and now <= self._last_stamp:
                now = self._last_stamp + timedelta(microseconds=1)
            self._last_stamp = now
            return now

    def _touch(self, identity: Identity, **changes: Any) -> Identity:
        return replace(identity, last_changed=self._stamp(), **changes)

    # =========================================================================
    # LOOKUP
    # =========================================================================

    @staticmethod
    def resolve_id(identifier: str) -> str:
        """Accept an identity id or a request URI and return the id."""
        if not isinstance(identifier, str) or not identifier.strip():
            raise ValidationError("Missing identity", field="Identity", value=identifier)
        identifier = identifier.strip()
        if "@" in identifier:
            return identity_id_from_uri(identifier)
        return identifier

    def _require(self, state: GraphState, identifier: str) -> Identity:
        identity_id = self.resolve_id(identifier)
        identity = state.identities.get(identity_id)
        if identity is None:
            raise UnknownIdentityError(identifier)
        return identity

    def _require_own(self, state: GraphState, identifier: str) -> OwnIdentity:
        identity = self._require(state, identifier)
        if not isinstance(identity, OwnIdentity):
            raise UnknownIdentityError(identifier)
        return identity

    def get_identity(self, identifier: str) -> Identity:
        return self._require(self._state, identifier)

    def get_own_identity(self, identifier: str) -> OwnIdentity:
        return self._require_own(self._state, identifier)

    def has_identity(self, identifier: str) -> bool:
        return self.resolve_id(identifier) in self._state.identities

    def all_identities(self) -> list[Identity]:
        return list(self._state.identities.values())

    def own_identities(self) -> list[OwnIdentity]:
        return self._state.own_identities()

    def identities_with_context(self, context: str) -> list[Identity]:
        """All identities that declared ``context`` (e.g. "Introduction")."""
        return [i for i in self._state.identities.values() if context in i.contexts]

    # =========================================================================
    # IDENTITIES
    # =========================================================================

    def create_identity(self, request_uri: str, nickname: str | None = None) -> Identity:
        """Add a remote identity discovered by URI."""
        identity_id = identity_id_from_uri(request_uri)
        nickname = validate_nickname(nickname)
        with self._transaction() as state:
            if identity_id in state.identities:
                raise DuplicateIdentityError(identity_id)
            now = self._stamp()
            identity = Identity(
                id=identity_id,
                request_uri=request_uri.strip(),
                nickname=nickname,
                edition=edition_of(request_uri),
                added_at=now,
                last_changed=now,
            )
            state.put_identity(identity)
        logger.info(f"Added identity {identity_id}")
        return identity

    def create_own_identity(
        self,
        insert_uri: str,
        request_uri: str,
        nickname: str,
        publish_trust_list: bool = True,
        contexts: Iterable[str] = (),
        properties: dict[str, str] | None = None,
    ) -> OwnIdentity:
        """Add a local identity; it becomes a trust anchor immediately."""
        identity_id = identity_id_from_uri(request_uri)
        if crypto_key_of(insert_uri, "InsertURI") != crypto_key_of(request_uri, "RequestURI"):
            raise ValidationError("InsertURI and RequestURI do not belong to the same key pair", field="InsertURI")
        if nickname is None:
            raise ValidationError("Own identities need a nickname", field="NickName")
        nickname = validate_nickname(nickname)
        contexts = frozenset(validate_context(c) for c in contexts)
        properties = dict(properties or {})
        for name, value in properties.items():
            validate_property(name, value)

        with self._transaction() as state:
            if identity_id in state.identities:
                raise DuplicateIdentityError(identity_id)
            now = self._stamp()
            identity = OwnIdentity(
                id=identity_id,
                request_uri=request_uri.strip(),
                insert_uri=insert_uri.strip(),
                nickname=nickname,
                contexts=contexts,
                properties=properties,
                edition=edition_of(request_uri),
                publish_trust_list=publish_trust_list,
                added_at=now,
                last_changed=now,
            )
            state.put_identity(identity)
            self._recompute_anchors(state, [identity])
        logger.info(f"Created own identity {identity_id} ({nickname})")
        return identity

    def delete_identity(self, identifier: str) -> None:
        """Delete an identity no trust edge refers to."""
        with self._transaction() as state:
            identity = self._require(state, identifier)
            if state.given.get(identity.id) or state.received.get(identity.id):
                raise ConflictError(f"Identity {identity.id} is still referenced by trust edges", existing_id=identity.id)
            state.drop_identity(identity.id)
        logger.info(f"Deleted identity {identity.id}")

    def set_nickname(self, identifier: str, nickname: str) -> Identity:
        nickname = validate_nickname(nickname)
        with self._transaction() as state:
            identity = self._require(state, identifier)
            if identity.nickname == nickname:
                return identity
            identity = self._touch(identity, nickname=nickname)
            state.put_identity(identity)
        return identity

    def add_context(self, identifier: str, context: str) -> Identity:
        context = validate_context(context)
        with self._transaction() as state:
            identity = self._require(state, identifier)
            if context in identity.contexts:
                return identity
            identity = self._touch(identity, contexts=identity.contexts | {context})
            state.put_identity(identity)
        return identity

    def remove_context(self, identifier: str, context: str) -> Identity:
        with self._transaction() as state:
            identity = self._require(state, identifier)
            if context not in identity.contexts:
                raise NotFoundError("Context", context)
            identity = self._touch(identity, contexts=identity.contexts - {context})
            state.put_identity(identity)
        return identity

    def set_property(self, identifier: str, name: str, value: str) -> Identity:
        validate_property(name, value)
        with self._transaction() as state:
            identity = self._require(state, identifier)
            if identity.properties.get(name) == value:
                return identity
            identity = self._touch(identity, properties={**identity.properties, name: value})
            state.put_identity(identity)
        return identity

    def get_property(self, identifier: str, name: str) -> str:
        identity = self.get_identity(identifier)
        try:
            return identity.properties[name]
        except KeyError:
            raise NotFoundError("Property", name) from None

    def remove_property(self, identifier: str, name: str) -> Identity:
        with self._transaction() as state:
            identity = self._require(state, identifier)
            if name not in identity.properties:
                raise NotFoundError("Property", name)
            properties = {k: v for k, v in identity.properties.items() if k != name}
            identity = self._touch(identity, properties=properties)
            state.put_identity(identity)
        return identity

    # =========================================================================
    # TRUST
    # =========================================================================

    def _put_trust(self, state: GraphState, truster: Identity, trustee: Identity, value: int, comment: str) -> Trust:
        if (
            isinstance(truster, OwnIdentity)
            and (truster.id, trustee.id) not in state.trusts
            and len(state.given.get(truster.id, {})) >= MAX_TRUST_LIST_SIZE
        ):
            raise ValidationError(
                f"{truster.id} already trusts {MAX_TRUST_LIST_SIZE} identities, the most a trust list can publish",
                field="Trustee",
                value=trustee.id,
            )
        trust = Trust(
            truster_id=truster.id,
            trustee_id=trustee.id,
            value=value,
            comment=comment,
            truster_edition=truster.edition,
        )
        state.put_trust(trust)
        if isinstance(truster, OwnIdentity):
            # The trust list is part of the published state
            state.put_identity(self._touch(truster))
        self._recompute_anchors(state)
        return trust

    def create_trust(self, truster: str, trustee: str, value: Any, comment: str = "") -> Trust:
        """Create a new edge; fails if the pair already has one."""
        value = validate_trust_value(value)
        comment = validate_comment(comment)
        with self._transaction() as state:
            truster_identity = self._require(state, truster)
            trustee_identity = self._require(state, trustee)
            if (truster_identity.id, trustee_identity.id) in state.trusts:
                raise DuplicateTrustError(truster_identity.id, trustee_identity.id)
            trust = self._put_trust(state, truster_identity, trustee_identity, value, comment)
        logger.debug(f"Trust created: {trust.truster_id} -> {trust.trustee_id} = {trust.value}")
        return trust

    def set_trust(self, truster: str, trustee: str, value: Any, comment: str = "") -> Trust:
        """Create or replace the edge truster -> trustee."""
        value = validate_trust_value(value)
        comment = validate_comment(comment)
        with self._transaction() as state:
            truster_identity = self._require(state, truster)
            trustee_identity = self._require(state, trustee)
            existing = state.trusts.get((truster_identity.id, trustee_identity.id))
            if existing is not None and existing.value == value and existing.comment == comment:
                return existing
            trust = self._put_trust(state, truster_identity, trustee_identity, value, comment)
        logger.debug(f"Trust set: {trust.truster_id} -> {trust.trustee_id} = {trust.value}")
        return trust

    def remove_trust(self, truster: str, trustee: str) -> None:
        with self._transaction() as state:
            truster_identity = self._require(state, truster)
            trustee_identity = self._require(state, trustee)
            if (truster_identity.id, trustee_identity.id) not in state.trusts:
                raise NotTrustedError(truster_identity.id, trustee_identity.id)
            state.drop_trust(truster_identity.id, trustee_identity.id)
            if isinstance(truster_identity, OwnIdentity):
                state.put_identity(self._touch(truster_identity))
            self._recompute_anchors(state)
        logger.debug(f"Trust removed: {truster_identity.id} -> {trustee_identity.id}")

    def get_trust(self, truster: str, trustee: str) -> Trust:
        state = self._state
        truster_identity = self._require(state, truster)
        trustee_identity = self._require(state, trustee)
        trust = state.trusts.get((truster_identity.id, trustee_identity.id))
        if trust is None:
            raise NotTrustedError(truster_identity.id, trustee_identity.id)
        return trust

    def given_trusts(self, identifier: str) -> list[Trust]:
        state = self._state
        identity = self._require(state, identifier)
        return list(state.given.get(identity.id, {}).values())

    def received_trusts(self, identifier: str) -> list[Trust]:
        state = self._state
        identity = self._require(state, identifier)
        return list(state.received.get(identity.id, {}).values())

    # =========================================================================
    # SCORES
    # =========================================================================

    def recompute_trust_tree(self, anchor: str) -> list[Score]:
        """Recompute and atomically replace the Score set of one anchor."""
        with self._transaction() as state:
            own = self._require_own(state, anchor)
            self._recompute_anchors(state, [own])
            scores = list(state.scores[own.id].values())
        return scores

    def recompute_all(self) -> None:
        """Recompute every anchor, e.g. after loading rows computed with other engine settings."""
        with self._transaction() as state:
            self._recompute_anchors(state)

    def get_score(self, anchor: str, target: str) -> Score:
        """Score of ``target`` in the tree of ``anchor``.

        Raises:
            UnreachableError: target has no Score row under this anchor
        """
        state = self._state
        own = self._require_own(state, anchor)
        identity = self._require(state, target)
        score = state.scores.get(own.id, {}).get(identity.id)
        if score is None:
            raise UnreachableError(own.id, identity.id)
        return score

    def scores(self, anchor: str) -> list[Score]:
        state = self._state
        own = self._require_own(state, anchor)
        return sorted(state.scores.get(own.id, {}).values(), key=lambda s: (s.rank, s.target_id))

    def identities_by_score_sign(self, anchor: str | None, sign: int) -> list[tuple[Identity, Score]]:
        """(Identity, Score) pairs whose score is positive, negative or zero.

        With ``anchor=None`` the rows of every anchor are returned.
        """
        state = self._state
        if anchor is None:
            anchor_ids = [o.id for o in state.own_identities()]
        else:
            anchor_ids = [self._require_own(state, anchor).id]

        result = []
        for anchor_id in anchor_ids:
            rows = sorted(state.scores.get(anchor_id, {}).values(), key=lambda s: (-s.score, s.target_id))
            for score in select_by_sign(rows, sign):
                result.append((state.identities[score.target_id], score))
        return result

    # =========================================================================
    # PUBLICATION BOOKKEEPING
    # =========================================================================

    def identities_needing_insert(self) -> list[OwnIdentity]:
        return [o for o in self._state.own_identities() if o.needs_insert]

    def export_identity(self, identifier: str) -> IdentityExport:
        """Consistent snapshot of an own identity and its given trust, for publishing.

        ``exported_at`` is ordered against every ``last_changed`` stamp: a
        mutation that is not part of the snapshot is stamped later.
        """
        with self._lock:
            state = self._state
            own = self._require_own(state, identifier)
            trusts = [
                (trust, state.identities[trustee_id])
                for trustee_id, trust in sorted(state.given.get(own.id, {}).items())
            ]
            return IdentityExport(identity=own, trusts=trusts, exported_at=self._stamp())

    def mark_inserted(self, identifier: str, edition: int, started_at: datetime) -> OwnIdentity:
        """Record a successful insert that was started at ``started_at``.

        ``last_insert`` becomes the start time, not the completion time, so
        a mutation that landed while the insert was in flight still counts
        as pending.
        """
        with self._transaction() as state:
            own = self._require_own(state, identifier)
            last_insert = started_at if own.last_insert is None else max(own.last_insert, started_at)
            edition = max(own.edition, edition)
            own = replace(
                own,
                last_insert=last_insert,
                edition=edition,
                request_uri=with_edition(own.request_uri, edition),
                insert_uri=with_edition(own.insert_uri, edition),
            )
            state.put_identity(own)
        return own

    # =========================================================================
    # DISCOVERY
    # =========================================================================

    def import_identity_state(
        self,
        identifier: str,
        *,
        edition: int,
        nickname: str | None,
        contexts: Iterable[str] = (),
        properties: dict[str, str] | None = None,
        publishes_trust_list: bool = False,
        trusts: Iterable[PublishedTrust] = (),
    ) -> Identity:
        """Apply state fetched from the network to a remote identity.

        Editions not newer than the known one are ignored, as is fetched
        state for own identities. If the identity publishes its trust list,
        its given edges are replaced by the published ones; unknown trustees
        are added on the fly.
        """
        nickname = validate_nickname(nickname)
        contexts = frozenset(validate_context(c) for c in contexts)
        properties = dict(properties or {})
        for name, value in properties.items():
            validate_property(name, value)
        published = []
        for request_uri, value, comment in trusts if publishes_trust_list else ():
            published.append((request_uri, validate_trust_value(value), validate_comment(comment)))

        with self._transaction() as state:
            identity = self._require(state, identifier)
            if isinstance(identity, OwnIdentity):
                logger.debug(f"Ignoring fetched state of own identity {identity.id}")
                return identity
            if identity.last_fetched is not None and edition <= identity.edition:
                logger.debug(f"Ignoring edition {edition} of {identity.id}, already have {identity.edition}")
                return identity

            now = self._stamp()
            identity = replace(
                identity,
                nickname=nickname,
                contexts=contexts,
                properties=properties,
                edition=max(edition, 0),
                request_uri=with_edition(identity.request_uri, max(edition, 0)),
                last_fetched=now,
                last_changed=now,
            )
            state.put_identity(identity)

            new_edges: dict[str, Trust] = {}
            for request_uri, value, comment in published:
                trustee_id = identity_id_from_uri(request_uri)
                if trustee_id not in state.identities:
                    state.put_identity(
                        Identity(
                            id=trustee_id,
                            request_uri=request_uri.strip(),
                            edition=edition_of(request_uri),
                            added_at=now,
                            last_changed=now,
                        )
                    )
                new_edges[trustee_id] = Trust(
                    truster_id=identity.id,
                    trustee_id=trustee_id,
                    value=value,
                    comment=comment,
                    truster_edition=identity.edition,
                )

            for trustee_id in list(state.given.get(identity.id, {})):
                if trustee_id not in new_edges:
                    state.drop_trust(identity.id, trustee_id)
            for trust in new_edges.values():
                if state.trusts.get(trust.key) != trust:
                    state.put_trust(trust)

            self._recompute_anchors(state)

        logger.info(f"Imported edition {identity.edition} of {identity.id} ({len(new_edges)} trust values)")
        return identity
