"""Score engine: rank, capacity and score of identities in a trust tree."""

from .engine import (
    ANCHOR_SCORE,
    DEFAULT_CAPACITIES,
    DEFAULT_MIN_POSITIVE_TRUST,
    SIGN_NEGATIVE,
    SIGN_POSITIVE,
    SIGN_ZERO,
    ScoreEngine,
    parse_sign,
    select_by_sign,
    weighted_trust,
)

__all__ = [
    "ANCHOR_SCORE",
    "DEFAULT_CAPACITIES",
    "DEFAULT_MIN_POSITIVE_TRUST",
    "SIGN_NEGATIVE",
    "SIGN_POSITIVE",
    "SIGN_ZERO",
    "ScoreEngine",
    "parse_sign",
    "select_by_sign",
    "weighted_trust",
]
