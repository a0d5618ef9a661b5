"""Sortable, collision-resistant identifiers in the Firebase push-id format."""

from __future__ import annotations

import random
import time
from typing import Callable, List

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"
_BASE = len(PUSH_CHARS)
_TIME_CHARS = 8
_RANDOM_CHARS = 12


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


class PushIdGenerator:
    """Generate 20-character ids whose string order follows creation order.

    The first 8 characters encode the millisecond timestamp, the last 12 are
    random. Ids generated within the same millisecond reuse the previous random
    suffix incremented by one, so a burst still sorts in call order.

    Build one generator per run and pass it to every writer.
    """

    def __init__(
        self,
        clock: Callable[[], int] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._clock = clock or _now_millis
        self._rng = rng or random.SystemRandom()
        self._last_time = -1
        self._last_rand: List[int] = [0] * _RANDOM_CHARS

    def generate(self) -> str:
        now = self._clock()
        # a clock that steps backwards is treated as the same millisecond
        if now <= self._last_time:
            now = self._last_time
            if self._increment_suffix():
                now += 1
        else:
            self._last_rand = [self._rng.randrange(_BASE) for _ in range(_RANDOM_CHARS)]
        self._last_time = now
        return _encode_time(now) + "".join(PUSH_CHARS[idx] for idx in self._last_rand)

    def _increment_suffix(self) -> bool:
        """Add one to the suffix; return True when it overflowed back to zero."""

        for position in range(_RANDOM_CHARS - 1, -1, -1):
            if self._last_rand[position] < _BASE - 1:
                self._last_rand[position] += 1
                return False
            self._last_rand[position] = 0
        return True


def _encode_time(millis: int) -> str:
    chars = [""] * _TIME_CHARS
    for position in range(_TIME_CHARS - 1, -1, -1):
        chars[position] = PUSH_CHARS[millis % _BASE]
        millis //= _BASE
    return "".join(chars)
