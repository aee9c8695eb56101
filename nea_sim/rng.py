"""
nea_sim/rng.py - Injectable Random Sources

Everything random in the simulation (unit ids, payload sizes, failure draws)
goes through one of these, so a test can script exact outcomes.
"""

import random
import string
from typing import Iterable, List, Optional

TOKEN_ALPHABET = string.digits + string.ascii_uppercase


class SeededRandom:
    """Production source: a private random.Random, replayable from its seed."""

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._rng = random.Random(seed)

    def random(self) -> float:
        return self._rng.random()

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def token(self, length: int) -> str:
        return "".join(self._rng.choice(TOKEN_ALPHABET) for _ in range(length))


class ScriptedRandom:
    """
    Deterministic source for tests.

    random() and randint() pop from their own queues (randint falls back to the
    lower bound once its queue is empty; random() falls back to 0.999, i.e.
    "no failure"). token() returns zero-padded sequence numbers so ids never
    collide.
    """

    def __init__(self, floats: Iterable[float] = (), ints: Iterable[int] = ()):
        self.floats: List[float] = list(floats)
        self.ints: List[int] = list(ints)
        self._seq = 0

    def random(self) -> float:
        if self.floats:
            return self.floats.pop(0)
        return 0.999

    def randint(self, a: int, b: int) -> int:
        if self.ints:
            return max(a, min(b, self.ints.pop(0)))
        return a

    def token(self, length: int) -> str:
        self._seq += 1
        return str(self._seq).zfill(length)[-length:]
