# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Introduction puzzle announcement.

New identities get into other trust trees by solving introduction puzzles
published by identities that offer them. Offering puzzles is announced
through the ``Introduction`` context and the ``IntroductionPuzzleCount``
property; solving and publishing the puzzles themselves happens elsewhere.
"""

from __future__ import annotations

from .graph.models import Identity
from .graph.store import GraphStore

INTRODUCTION_CONTEXT = "Introduction"
PUZZLE_COUNT_PROPERTY = "IntroductionPuzzleCount"
PUZZLE_COUNT = 10


def introduction_properties(count: int = PUZZLE_COUNT) -> dict[str, str]:
    return {PUZZLE_COUNT_PROPERTY: str(count)}


def enable_introduction(store: GraphStore, identifier: str, count: int = PUZZLE_COUNT) -> Identity:
    """Announce that an existing own identity publishes introduction puzzles."""
    store.add_context(identifier, INTRODUCTION_CONTEXT)
    return store.set_property(identifier, PUZZLE_COUNT_PROPERTY, str(count))


def puzzle_publishers(store: GraphStore) -> list[Identity]:
    """Identities that announced introduction puzzles, most puzzles first."""
    publishers = store.identities_with_context(INTRODUCTION_CONTEXT)

    def puzzle_count(identity: Identity) -> int:
        try:
            return int(identity.properties.get(PUZZLE_COUNT_PROPERTY, "0"))
        except ValueError:
            return 0

    return sorted(publishers, key=lambda i: (-puzzle_count(i), i.id))
