"""
Shuffler abstraction used for question and choice randomization.

All implementations delegate to ``random.Random.shuffle`` (Fisher-Yates), so
every permutation is equally likely.
"""

import random
from abc import ABC, abstractmethod
from typing import List, Sequence, TypeVar

T = TypeVar('T')


class Shuffler(ABC):
    """Returns a permuted copy of a sequence; the input is never mutated."""

    @abstractmethod
    def shuffle(self, items: Sequence[T]) -> List[T]:
        pass


class RandomShuffler(Shuffler):
    """Shuffler seeded from system entropy."""

    def __init__(self):
        self._random = random.SystemRandom()

    def shuffle(self, items: Sequence[T]) -> List[T]:
        result = list(items)
        self._random.shuffle(result)
        return result


class SeededShuffler(Shuffler):
    """Deterministic shuffler for tests and reproducible runs."""

    def __init__(self, seed: int = 0):
        self._random = random.Random(seed)

    def shuffle(self, items: Sequence[T]) -> List[T]:
        result = list(items)
        self._random.shuffle(result)
        return result


class IdentityShuffler(Shuffler):
    """Keeps the original order."""

    def shuffle(self, items: Sequence[T]) -> List[T]:
        return list(items)


class ReversingShuffler(Shuffler):
    """Reverses the order; handy when a test needs a known, non-trivial permutation."""

    def shuffle(self, items: Sequence[T]) -> List[T]:
        return list(reversed(items))
