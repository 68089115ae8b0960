"""Seeded randomness for offline games: dealing card columns and ordering the ball draw."""

from __future__ import annotations

import hashlib
import random
from typing import List, Sequence


try:  # optional dependency
    import numpy as _np  # type: ignore
except ImportError:  # pragma: no cover - optional
    _np = None

ENGINES = ("py_random", "numpy_pcg64")


class BallSource:
    """One seeded stream of draws."""

    engine = ""

    def deal(self, pool: Sequence[int], count: int) -> List[int]:
        """``count`` distinct numbers from ``pool``, ascending as printed down a card column."""
        raise NotImplementedError

    def draw_order(self, balls: Sequence[int]) -> List[int]:
        raise NotImplementedError


def _check_deal(pool: Sequence[int], count: int) -> None:
    if not 0 <= count <= len(pool):
        raise ValueError(f"cannot deal {count} numbers from a pool of {len(pool)}")


class PyBallSource(BallSource):
    engine = "py_random"

    def __init__(self, seed: int):
        self._rng = random.Random(seed)

    def deal(self, pool: Sequence[int], count: int) -> List[int]:
        _check_deal(pool, count)
        return sorted(self._rng.sample(list(pool), count))

    def draw_order(self, balls: Sequence[int]) -> List[int]:
        order = list(balls)
        self._rng.shuffle(order)
        return order


class PCG64BallSource(BallSource):  # pragma: no cover - covered when numpy present
    engine = "numpy_pcg64"

    def __init__(self, seed: int):
        if _np is None:
            raise RuntimeError("numpy is not installed; install bingo-bot[pcg]")
        self._rng = _np.random.Generator(_np.random.PCG64(seed))

    def deal(self, pool: Sequence[int], count: int) -> List[int]:
        _check_deal(pool, count)
        values = list(pool)
        picks = self._rng.choice(len(values), size=count, replace=False)
        return sorted(values[int(i)] for i in picks)

    def draw_order(self, balls: Sequence[int]) -> List[int]:
        values = list(balls)
        return [values[int(i)] for i in self._rng.permutation(len(values))]


def ball_source(engine: str, seed: int) -> BallSource:
    engine = (engine or "py_random").strip().lower()
    if engine == "py_random":
        return PyBallSource(seed)
    if engine == "numpy_pcg64":
        return PCG64BallSource(seed)
    raise ValueError(f"Unsupported RNG engine: {engine} (expected one of {', '.join(ENGINES)})")


def stream_seed(base_seed: int, card_number: int, stream: str) -> int:
    """Seed for one stream of a simulated game.

    ``stream`` is ``"card"`` for dealing ``card_number``'s columns or
    ``"calls"`` for the draw order, so the same base seed always deals the same
    card and calls the same balls. Returns a 63-bit non-negative integer.
    """
    digest = hashlib.sha256(f"{base_seed}|{card_number}|{stream}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big") & ((1 << 63) - 1)
