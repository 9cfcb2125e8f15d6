# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Graph state, change sets and persistence backends.

``GraphState`` is the in-memory picture of the graph: identities, trust
edges (with truster/trustee indexes) and the per-anchor Score sets. The store
mutates a clone of it and hands the difference to a ``GraphBackend`` as one
``ChangeSet``; a backend either commits the whole change set or raises
``PersistenceError`` and commits nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ..core.exceptions import (
    DuplicateIdentityError,
    DuplicateScoreError,
    DuplicateTrustError,
    PersistenceError,
)
from .models import Identity, OwnIdentity, Score, Trust

logger = logging.getLogger(__name__)


# =============================================================================
# GRAPH STATE
# =============================================================================


@dataclass
class GraphState:
    """Identities, trust edges and Score sets.

    Inner dicts are never mutated in place once a state has been cloned;
    every write replaces the inner dict, so ``clone()`` only has to copy the
    outer level.
    """

    identities: dict[str, Identity] = field(default_factory=dict)
    trusts: dict[tuple[str, str], Trust] = field(default_factory=dict)
    given: dict[str, dict[str, Trust]] = field(default_factory=dict)
    received: dict[str, dict[str, Trust]] = field(default_factory=dict)
    scores: dict[str, dict[str, Score]] = field(default_factory=dict)

    def clone(self) -> GraphState:
        return GraphState(
            identities=dict(self.identities),
            trusts=dict(self.trusts),
            given=dict(self.given),
            received=dict(self.received),
            scores=dict(self.scores),
        )

    def put_identity(self, identity: Identity) -> None:
        self.identities[identity.id] = identity

    def drop_identity(self, identity_id: str) -> None:
        self.identities.pop(identity_id, None)
        self.scores.pop(identity_id, None)

    def put_trust(self, trust: Trust) -> None:
        self.trusts[trust.key] = trust
        self.given[trust.truster_id] = {**self.given.get(trust.truster_id, {}), trust.trustee_id: trust}
        self.received[trust.trustee_id] = {**self.received.get(trust.trustee_id, {}), trust.truster_id: trust}

    def drop_trust(self, truster_id: str, trustee_id: str) -> None:
        self.trusts.pop((truster_id, trustee_id), None)
        given = {k: v for k, v in self.given.get(truster_id, {}).items() if k != trustee_id}
        received = {k: v for k, v in self.received.get(trustee_id, {}).items() if k != truster_id}
        if given:
            self.given[truster_id] = given
        else:
            self.given.pop(truster_id, None)
        if received:
            self.received[trustee_id] = received
        else:
            self.received.pop(trustee_id, None)

    def own_identities(self) -> list[OwnIdentity]:
        return [i for i in self.identities.values() if isinstance(i, OwnIdentity)]

    @classmethod
    def from_rows(
        cls,
        identities: list[Identity],
        trusts: list[Trust],
        scores: list[Score],
    ) -> GraphState:
        """Build a state from loaded rows, rejecting duplicate keys."""
        state = cls()
        for identity in identities:
            if identity.id in state.identities:
                raise DuplicateIdentityError(identity.id)
            state.put_identity(identity)
        for trust in trusts:
            if trust.key in state.trusts:
                raise DuplicateTrustError(trust.truster_id, trust.trustee_id)
            state.put_trust(trust)
        for score in scores:
            anchor_scores = state.scores.setdefault(score.anchor_id, {})
            if score.target_id in anchor_scores:
                raise DuplicateScoreError(score.anchor_id, score.target_id)
            anchor_scores[score.target_id] = score
        return state


@dataclass
class ChangeSet:
    """Everything one committed mutation changes."""

    upserted_identities: list[Identity] = field(default_factory=list)
    deleted_identities: list[str] = field(default_factory=list)
    upserted_trusts: list[Trust] = field(default_factory=list)
    deleted_trusts: list[tuple[str, str]] = field(default_factory=list)
    # anchor id -> complete new Score set (empty list: drop the set)
    replaced_scores: dict[str, list[Score]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (
            self.upserted_identities
            or self.deleted_identities
            or self.upserted_trusts
            or self.deleted_trusts
            or self.replaced_scores
        )

    @classmethod
    def between(cls, old: GraphState, new: GraphState) -> ChangeSet:
        """Diff two states. Relies on copy-on-write: unchanged entries are the same objects."""
        changes = cls()
        for identity_id, identity in new.identities.items():
            if old.identities.get(identity_id) is not identity:
                changes.upserted_identities.append(identity)
        changes.deleted_identities = [i for i in old.identities if i not in new.identities]

        for key, trust in new.trusts.items():
            if old.trusts.get(key) is not trust:
                changes.upserted_trusts.append(trust)
        changes.deleted_trusts = [k for k in old.trusts if k not in new.trusts]

        for anchor_id in set(old.scores) | set(new.scores):
            new_set = new.scores.get(anchor_id)
            if old.scores.get(anchor_id) is not new_set and old.scores.get(anchor_id) != new_set:
                changes.replaced_scores[anchor_id] = list((new_set or {}).values())
        return changes


# =============================================================================
# BACKENDS
# =============================================================================


@runtime_checkable
class GraphBackend(Protocol):
    def load(self) -> GraphState:
        """Read the whole persisted graph."""
        ...

    def commit(self, changes: ChangeSet) -> None:
        """Atomically apply ``changes``; raise PersistenceError on failure."""
        ...


class MemoryBackend:
    """Non-durable backend; keeps a committed copy of the graph in memory."""

    def __init__(self) -> None:
        self._state = GraphState()
        self.commit_count = 0

    def load(self) -> GraphState:
        return self._state.clone()

    def commit(self, changes: ChangeSet) -> None:
        state = self._state.clone()
        for identity in changes.upserted_identities:
            state.put_identity(identity)
        for truster_id, trustee_id in changes.deleted_trusts:
            state.drop_trust(truster_id, trustee_id)
        for trust in changes.upserted_trusts:
            state.put_trust(trust)
        for anchor_id, scores in changes.replaced_scores.items():
            if scores:
                state.scores[anchor_id] = {s.target_id: s for s in scores}
            else:
                state.scores.pop(anchor_id, None)
        for identity_id in changes.deleted_identities:
            state.drop_identity(identity_id)
        self._state = state
        self.commit_count += 1


class PostgresBackend:
    """Backend storing the graph in PostgreSQL through ``core.db``.

    One ``commit`` runs inside one ``get_cursor()`` block, i.e. one
    transaction, so a crash never leaves Score rows out of step with the
    edges that produced them.
    """

    def __init__(self, init_schema: bool = True) -> None:
        self._init_schema = init_schema

    def load(self) -> GraphState:
        from ..core.db import get_cursor, init_schema

        try:
            if self._init_schema:
                init_schema()
            with get_cursor() as cur:
                cur.execute("SELECT * FROM identities")
                identities = [_identity_from_row(row) for row in cur.fetchall()]
                cur.execute("SELECT * FROM trusts")
                trusts = [_trust_from_row(row) for row in cur.fetchall()]
                cur.execute("SELECT * FROM scores")
                scores = [_score_from_row(row) for row in cur.fetchall()]
        except Exception as e:
            raise PersistenceError(f"Failed to load trust graph: {e}") from e

        logger.info(f"Loaded {len(identities)} identities, {len(trusts)} trusts and {len(scores)} scores")
        return GraphState.from_rows(identities, trusts, scores)

    def commit(self, changes: ChangeSet) -> None:
        from psycopg2.extras import Json, execute_values

        from ..core.db import get_cursor

        if changes.is_empty:
            return
        try:
            with get_cursor() as cur:
                for identity in changes.upserted_identities:
                    own = isinstance(identity, OwnIdentity)
                    cur.execute(
                        """
                        INSERT INTO identities (
                            id, request_uri, nickname, contexts, properties, edition,
                            added_at, last_changed, last_fetched,
                            insert_uri, publish_trust_list, last_insert
                        )
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        ON CONFLICT (id) DO UPDATE SET
                            request_uri = EXCLUDED.request_uri,
                            nickname = EXCLUDED.nickname,
                            contexts = EXCLUDED.contexts,
                            properties = EXCLUDED.properties,
                            edition = EXCLUDED.edition,
                            last_changed = EXCLUDED.last_changed,
                            last_fetched = EXCLUDED.last_fetched,
                            insert_uri = EXCLUDED.insert_uri,
                            publish_trust_list = EXCLUDED.publish_trust_list,
                            last_insert = EXCLUDED.last_insert
                        """,
                        (
                            identity.id,
                            identity.request_uri,
                            identity.nickname,
                            Json(sorted(identity.contexts)),
                            Json(dict(identity.properties)),
                            identity.edition,
                            identity.added_at,
                            identity.last_changed,
                            identity.last_fetched,
                            identity.insert_uri if own else None,
                            identity.publish_trust_list if own else None,
                            identity.last_insert if own else None,
                        ),
                    )

                for truster_id, trustee_id in changes.deleted_trusts:
                    cur.execute(
                        "DELETE FROM trusts WHERE truster_id = %s AND trustee_id = %s",
                        (truster_id, trustee_id),
                    )

                for trust in changes.upserted_trusts:
                    cur.execute(
                        """
                        INSERT INTO trusts (truster_id, trustee_id, value, comment, truster_edition)
                        VALUES (%s, %s, %s, %s, %s)
                        ON CONFLICT (truster_id, trustee_id) DO UPDATE SET
                            value = EXCLUDED.value,
                            comment = EXCLUDED.comment,
                            truster_edition = EXCLUDED.truster_edition
                        """,
                        (trust.truster_id, trust.trustee_id, trust.value, trust.comment, trust.truster_edition),
                    )

                for anchor_id, scores in changes.replaced_scores.items():
                    cur.execute("DELETE FROM scores WHERE anchor_id = %s", (anchor_id,))
                    if scores:
                        execute_values(
                            cur,
                            "INSERT INTO scores (anchor_id, target_id, rank, capacity, score) VALUES %s",
                            [(s.anchor_id, s.target_id, s.rank, s.capacity, s.score) for s in scores],
                        )

                for identity_id in changes.deleted_identities:
                    cur.execute("DELETE FROM scores WHERE target_id = %s", (identity_id,))
                    cur.execute("DELETE FROM identities WHERE id = %s", (identity_id,))
        except Exception as e:
            raise PersistenceError(f"Failed to commit trust graph changes: {e}") from e


def _identity_from_row(row: dict[str, Any]) -> Identity:
    common = {
        "id": row["id"],
        "request_uri": row["request_uri"],
        "nickname": row["nickname"],
        "contexts": frozenset(row.get("contexts") or []),
        "properties": dict(row.get("properties") or {}),
        "edition": row["edition"],
        "added_at": row["added_at"],
        "last_changed": row["last_changed"],
        "last_fetched": row.get("last_fetched"),
    }
    if row.get("insert_uri"):
        return OwnIdentity(
            **common,
            insert_uri=row["insert_uri"],
            publish_trust_list=bool(row.get("publish_trust_list")),
            last_insert=row.get("last_insert"),
        )
    return Identity(**common)


def _trust_from_row(row: dict[str, Any]) -> Trust:
    return Trust(
        truster_id=row["truster_id"],
        trustee_id=row["trustee_id"],
        value=row["value"],
        comment=row.get("comment") or "",
        truster_edition=row.get("truster_edition") or 0,
    )


def _score_from_row(row: dict[str, Any]) -> Score:
    return Score(
        anchor_id=row["anchor_id"],
        target_id=row["target_id"],
        rank=row["rank"],
        capacity=row["capacity"],
        score=row["score"],
    )
