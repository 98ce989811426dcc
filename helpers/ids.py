"""Sortable 20 character task identifiers.

The first 8 characters encode the millisecond timestamp, the remaining 12 are
random. Ids minted within the same millisecond reuse the previous random tail
incremented by one, so a single generator always hands out increasing ids.

Not cryptographically secure. A generator keeps the last timestamp and tail,
so share one instance only behind a lock or use one per thread.
"""
from __future__ import annotations

import random
import time
from typing import Callable, List, Optional


PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"
TIME_LENGTH = 8
RANDOM_LENGTH = 12
ID_LENGTH = TIME_LENGTH + RANDOM_LENGTH


def _now_ms() -> int:
    return int(time.time() * 1000)


def encode_timestamp(ms: int) -> str:
    if ms < 0:
        raise ValueError("timestamp must be non-negative")
    chars = []
    for _ in range(TIME_LENGTH):
        chars.append(PUSH_CHARS[ms % 64])
        ms //= 64
    return "".join(reversed(chars))


def decode_timestamp(value: str) -> int:
    ms = 0
    for ch in value[:TIME_LENGTH]:
        ms = ms * 64 + PUSH_CHARS.index(ch)
    return ms


class IdGenerator:
    def __init__(
        self,
        clock: Callable[[], int] = _now_ms,
        rng: Optional[random.Random] = None,
    ):
        self._clock = clock
        self._rng = rng or random.Random()
        self._last_ms: Optional[int] = None
        self._last_tail: List[int] = []

    def next_id(self) -> str:
        now = self._clock()
        if now == self._last_ms and self._last_tail:
            self._increment_tail()
        else:
            self._last_tail = [self._rng.randrange(64) for _ in range(RANDOM_LENGTH)]
        self._last_ms = now
        tail = "".join(PUSH_CHARS[d] for d in self._last_tail)
        return encode_timestamp(now) + tail

    def _increment_tail(self) -> None:
        tail = self._last_tail
        i = RANDOM_LENGTH - 1
        while i >= 0 and tail[i] == 63:
            tail[i] = 0
            i -= 1
        # a full wrap-around of 64**12 ids in one millisecond is not reachable
        if i >= 0:
            tail[i] += 1


_default = IdGenerator()


def next_id() -> str:
    return _default.next_id()


__all__ = ["IdGenerator", "PUSH_CHARS", "ID_LENGTH", "decode_timestamp", "encode_timestamp", "next_id"]
