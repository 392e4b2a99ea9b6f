"""
Random number generation for role shuffling.

Roles are permuted with an explicit Fisher-Yates shuffle:
1. Walk the list from the last index down to 1
2. Pick j uniformly from [0, i] via randrange (rejection-sampled, unbiased)
3. Swap items i and j

The default source is random.SystemRandom (OS entropy). Tests pass a seeded
random.Random for reproducible assignments.
"""

import random
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")

_system_random = random.SystemRandom()


def fisher_yates(items: Sequence[T], rng: random.Random | None = None) -> list[T]:
    """Return a uniformly random permutation of items (input is not mutated)."""
    source = rng if rng is not None else _system_random
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = source.randrange(i + 1)
        result[i], result[j] = result[j], result[i]
    return result
