"""Chronologically ordered child key generation."""
import random
import threading
import time
from typing import List, Optional

# Alphabet in ASCII order so that generated keys sort lexicographically.
PUSH_CHARS = '-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz'

TIMESTAMP_LENGTH = 8
RANDOM_LENGTH = 12
KEY_LENGTH = TIMESTAMP_LENGTH + RANDOM_LENGTH


class PushKeyGenerator:
    """
    Generator of 20-character keys that sort in creation order.

    The first 8 characters encode the millisecond timestamp, the remaining 12
    are random. Keys generated within the same millisecond reuse the previous
    random part incremented by one, so they stay strictly increasing.
    """

    def __init__(self, clock=time.time, rng: Optional[random.Random] = None):
        self._clock = clock
        self._rng = rng or random.SystemRandom()
        self._lock = threading.Lock()
        self._last_timestamp = -1
        self._last_random: List[int] = []

    def generate(self) -> str:
        with self._lock:
            now = int(self._clock() * 1000)
            if now == self._last_timestamp:
                self._increment_random()
            else:
                self._last_timestamp = now
                self._last_random = [
                    self._rng.randrange(len(PUSH_CHARS)) for _ in range(RANDOM_LENGTH)
                ]
            random_part = list(self._last_random)

        timestamp_chars = []
        for _ in range(TIMESTAMP_LENGTH):
            timestamp_chars.append(PUSH_CHARS[now % 64])
            now //= 64
        timestamp_part = ''.join(reversed(timestamp_chars))

        return timestamp_part + ''.join(PUSH_CHARS[i] for i in random_part)

    def _increment_random(self) -> None:
        i = RANDOM_LENGTH - 1
        while i >= 0 and self._last_random[i] == 63:
            self._last_random[i] = 0
            i -= 1
        if i >= 0:
            self._last_random[i] += 1


_default_generator = PushKeyGenerator()


def generate_push_key() -> str:
    """Generate a key using the process-wide generator."""
    return _default_generator.generate()
