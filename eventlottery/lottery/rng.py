"""Seeded randomness for draws.

Every draw is driven by an integer seed. Production seeds come from
:mod:`secrets`, so nobody can predict a draw in advance; once the seed is
recorded, the permutation can be replayed exactly for audits and tests.
"""

from __future__ import annotations

import random
import secrets
from typing import Callable, MutableSequence, Sequence, TypeVar

T = TypeVar("T")

#: Callable that returns a fresh seed for each draw.
SeedFactory = Callable[[], int]

SEED_BITS = 64


def generate_seed() -> int:
    """Return a cryptographically strong non-negative seed."""
    return secrets.randbits(SEED_BITS)


def fixed_seed_factory(seed: int) -> SeedFactory:
    """Return a factory that always yields ``seed``; meant for tests and demos."""
    if seed < 0:
        raise ValueError("seed must be non-negative")
    return lambda: seed


def fisher_yates(items: MutableSequence[T], rng: random.Random) -> None:
    """Shuffle ``items`` in place with the Fisher-Yates algorithm.

    Each of the ``n!`` orderings is equally likely given an unbiased ``rng``;
    ``randrange`` avoids the modulo bias of naive index scaling.
    """
    for i in range(len(items) - 1, 0, -1):
        j = rng.randrange(i + 1)
        items[i], items[j] = items[j], items[i]


def seeded_permutation(items: Sequence[T], seed: int) -> list[T]:
    """Return a shuffled copy of ``items`` determined entirely by ``seed``."""
    if seed < 0:
        raise ValueError("seed must be non-negative")
    shuffled = list(items)
    fisher_yates(shuffled, random.Random(seed))
    return shuffled


def split_winners(
    candidates: Sequence[T], number_of_winners: int, seed: int
) -> tuple[list[T], list[T]]:
    """Shuffle ``candidates`` and split them into winners and losers.

    ``min(number_of_winners, len(candidates))`` winners are taken from the
    front of the permutation.
    """
    if number_of_winners <= 0:
        raise ValueError("number_of_winners must be positive")
    order = seeded_permutation(candidates, seed)
    cut = min(number_of_winners, len(order))
    return order[:cut], order[cut:]


__all__ = [
    "SEED_BITS",
    "SeedFactory",
    "fisher_yates",
    "fixed_seed_factory",
    "generate_seed",
    "seeded_permutation",
    "split_winners",
]
