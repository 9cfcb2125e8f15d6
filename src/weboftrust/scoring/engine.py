# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Rank, capacity and score computation for trust trees.

For one trust anchor (an own identity):

- Rank: hop distance from the anchor along edges with a positive value.
  Breadth-first, visited set keyed by identity id, so cycles and self-loops
  terminate. The anchor has rank 0.
- Capacity: fixed lookup from rank (100, 40, 16, 6, 2, 1). Identities whose
  rank would fall past the end of the table are outside the tree.
- Score: sum over every ranked truster U of the target of
  ``capacity(U) * value / 100``, truncated toward zero.

The engine is a pure function of the edge set: it never patches an existing
Score set, it always computes a complete new one.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Iterable, Mapping
from typing import Any

from ..core.exceptions import ValidationError
from ..graph.models import MAX_TRUST, Score, Trust

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_CAPACITIES: tuple[int, ...] = (100, 40, 16, 6, 2, 1)
DEFAULT_MIN_POSITIVE_TRUST = 1  # edges below this do not carry rank
ANCHOR_SCORE = MAX_TRUST

SIGN_POSITIVE = 1
SIGN_NEGATIVE = -1
SIGN_ZERO = 0

_SIGN_SYMBOLS = {"+": SIGN_POSITIVE, "-": SIGN_NEGATIVE, "0": SIGN_ZERO}

# truster id -> trustee id -> Trust, and the reverse index
EdgeIndex = Mapping[str, Mapping[str, Trust]]


def parse_sign(symbol: str) -> int:
    """Map a protocol selector ("+", "-", "0") to a sign."""
    try:
        return _SIGN_SYMBOLS[symbol.strip()]
    except (KeyError, AttributeError):
        raise ValidationError(f"Unhandled select value ({symbol})", field="Select", value=symbol) from None


def weighted_trust(capacity: int, value: int) -> int:
    """``capacity * value / 100`` truncated toward zero."""
    product = capacity * value
    if product >= 0:
        return product // 100
    return -((-product) // 100)


def select_by_sign(scores: Iterable[Score], sign: int) -> list[Score]:
    """Filter Score rows by the sign of their score.

    Only existing rows are considered, so identities outside the trust tree
    never show up in any bucket, not even the zero bucket.
    """
    if sign == SIGN_POSITIVE:
        return [s for s in scores if s.score > 0]
    if sign == SIGN_NEGATIVE:
        return [s for s in scores if s.score < 0]
    if sign == SIGN_ZERO:
        return [s for s in scores if s.score == 0]
    raise ValidationError(f"Unhandled select value ({sign})", field="Select", value=sign)


# =============================================================================
# SCORE ENGINE
# =============================================================================


class ScoreEngine:
    """Computes complete Score sets for trust anchors.

    Example:
        >>> engine = ScoreEngine()
        >>> scores = engine.compute_trust_tree(anchor_id, given, received)
        >>> scores[target_id].rank
        2
    """

    def __init__(
        self,
        capacities: Iterable[int] = DEFAULT_CAPACITIES,
        min_positive_trust: int = DEFAULT_MIN_POSITIVE_TRUST,
    ):
        """Initialize the engine.

        Args:
            capacities: Capacity per rank, index = rank. Must be positive
                        and non-increasing; its length is the rank cutoff.
            min_positive_trust: Smallest edge value that propagates rank
        """
        capacities = tuple(capacities)
        if not capacities or any(c <= 0 for c in capacities):
            raise ValueError("capacities must be a non-empty sequence of positive integers")
        if any(a < b for a, b in zip(capacities, capacities[1:])):
            raise ValueError("capacities must be non-increasing")
        if not 1 <= min_positive_trust <= MAX_TRUST:
            raise ValueError(f"min_positive_trust must be between 1 and {MAX_TRUST}")

        self.capacities = capacities
        self.min_positive_trust = min_positive_trust
        self.stats = {
            "computations": 0,
            "identities_ranked": 0,
            "total_time_ms": 0.0,
        }

    @property
    def max_rank(self) -> int:
        return len(self.capacities) - 1

    def capacity_for_rank(self, rank: int | None) -> int:
        if rank is None or rank < 0 or rank > self.max_rank:
            return 0
        return self.capacities[rank]

    def compute_ranks(self, anchor_id: str, given: EdgeIndex) -> dict[str, int]:
        """Breadth-first rank assignment from ``anchor_id``.

        Returns:
            Dict mapping identity id -> rank for every identity in the tree
        """
        ranks: dict[str, int] = {anchor_id: 0}
        frontier: deque[str] = deque([anchor_id])

        while frontier:
            current_id = frontier.popleft()
            next_rank = ranks[current_id] + 1
            if next_rank > self.max_rank:
                continue

            for trustee_id, trust in given.get(current_id, {}).items():
                if trust.value < self.min_positive_trust or trustee_id in ranks:
                    continue
                ranks[trustee_id] = next_rank
                frontier.append(trustee_id)

        return ranks

    def compute_trust_tree(
        self,
        anchor_id: str,
        given: EdgeIndex,
        received: EdgeIndex,
    ) -> dict[str, Score]:
        """Compute the complete Score set of one anchor.

        Args:
            anchor_id: The own identity whose perspective is computed
            given: truster id -> trustee id -> Trust
            received: trustee id -> truster id -> Trust

        Returns:
            Dict mapping target id -> Score, one entry per identity in the tree
        """
        start_time = time.time()
        ranks = self.compute_ranks(anchor_id, given)

        scores: dict[str, Score] = {}
        # Non-decreasing rank order: every truster's capacity is final before use
        for target_id, rank in sorted(ranks.items(), key=lambda item: item[1]):
            capacity = self.capacities[rank]
            if target_id == anchor_id:
                value = ANCHOR_SCORE
            else:
                value = sum(
                    weighted_trust(self.capacities[ranks[truster_id]], trust.value)
                    for truster_id, trust in received.get(target_id, {}).items()
                    if truster_id in ranks and truster_id != target_id
                )
            scores[target_id] = Score(
                anchor_id=anchor_id,
                target_id=target_id,
                rank=rank,
                capacity=capacity,
                score=value,
            )

        elapsed_ms = (time.time() - start_time) * 1000
        self.stats["computations"] += 1
        self.stats["identities_ranked"] += len(scores)
        self.stats["total_time_ms"] += elapsed_ms
        logger.debug(f"Computed trust tree of {anchor_id}: {len(scores)} identities in {elapsed_ms:.1f}ms")
        return scores

    def get_stats(self) -> dict[str, Any]:
        return {
            **self.stats,
            "capacities": list(self.capacities),
            "min_positive_trust": self.min_positive_trust,
        }
