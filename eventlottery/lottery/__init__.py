from .engine import DecisionEngine, MAX_PROMOTION_ATTEMPTS
from .results import (
    CancelResult,
    DrawResult,
    ExpiryResult,
    JoinResult,
    ReplacementResult,
    RespondResult,
    ResponseOutcome,
)
from .rng import generate_seed, seeded_permutation, split_winners

__all__ = [
    "CancelResult",
    "DecisionEngine",
    "DrawResult",
    "ExpiryResult",
    "JoinResult",
    "MAX_PROMOTION_ATTEMPTS",
    "ReplacementResult",
    "RespondResult",
    "ResponseOutcome",
    "generate_seed",
    "seeded_permutation",
    "split_winners",
]
