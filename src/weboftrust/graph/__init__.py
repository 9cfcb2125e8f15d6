"""Trust graph: identities, trust edges, Score sets and their persistence."""

from .models import (
    MAX_TRUST,
    MIN_TRUST,
    Identity,
    OwnIdentity,
    Score,
    Trust,
    identity_id_from_uri,
)
from .persistence import ChangeSet, GraphBackend, GraphState, MemoryBackend, PostgresBackend
from .store import GraphStore

__all__ = [
    "MAX_TRUST",
    "MIN_TRUST",
    "ChangeSet",
    "GraphBackend",
    "GraphState",
    "GraphStore",
    "Identity",
    "MemoryBackend",
    "OwnIdentity",
    "PostgresBackend",
    "Score",
    "Trust",
    "identity_id_from_uri",
]
